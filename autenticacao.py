import logging
import re

import bcrypt
from flask import flash, has_request_context, session
from flask_login import login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

from erros import ErroCondominio, CredenciaisInvalidas, CondominioIndisponivel, ErroInfraestrutura
from models import Administrador, Condominio, Morador

logger = logging.getLogger(__name__)

PAPEL_ADMIN = "admin"
PAPEL_SINDICO = "sindico"
PAPEL_MORADOR = "morador"
PAPEIS = (PAPEL_ADMIN, PAPEL_SINDICO, PAPEL_MORADOR)

CHAVE_SESSAO = "condo_user"
NOME_CONDOMINIO_PADRAO = "Condomínio"

# ============================================
# SENHAS
# ============================================

def hash_senha(senha: str) -> str:
    return bcrypt.hashpw(senha.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verificar_senha(senha: str, senha_hash: str | None) -> bool:
    if not senha or not senha_hash:
        return False
    try:
        return bcrypt.checkpw(senha.encode('utf-8'), senha_hash.encode('utf-8'))
    except ValueError:
        # hash corrompido ou em formato desconhecido
        return False


def somente_digitos(valor: str | None) -> str:
    return re.sub(r"\D", "", valor or "")


# ============================================
# SESSÃO
# ============================================

class SessaoUsuario:
    """Usuário logado, com o papel resolvido no login.

    Serializado no cookie de sessão do Flask (``condo_user``) apenas na
    fronteira HTTP; as operações recebem o objeto explicitamente.
    """

    def __init__(self, papel, nome, email, matricula=None, nome_condominio=None,
                 condominio_selecionado=None, condominios=None, morador_id=None,
                 unidade=None, telefone=None, endereco=None, id=None):
        if papel not in PAPEIS:
            raise ValueError(f"Papel desconhecido: {papel}")
        if papel == PAPEL_MORADOR and (morador_id is None or not unidade):
            raise ValueError("Sessão de morador exige morador_id e unidade")
        if papel != PAPEL_MORADOR and (morador_id is not None or unidade):
            raise ValueError("Somente sessões de morador têm morador_id e unidade")

        self.papel = papel
        self.nome = nome
        self.email = email
        self.telefone = telefone
        self.matricula = matricula
        self.nome_condominio = nome_condominio
        self.condominio_selecionado = condominio_selecionado
        self.condominios = list(condominios or [])
        self.morador_id = morador_id
        self.unidade = unidade
        self.endereco = dict(endereco or {})
        self.id = id or self._gerar_id()

    def _gerar_id(self):
        if self.papel == PAPEL_MORADOR:
            return f"{PAPEL_MORADOR}:{self.morador_id}"
        if self.papel == PAPEL_SINDICO:
            return f"{PAPEL_SINDICO}:{self.email or self.matricula}"
        return f"{PAPEL_ADMIN}:{self.email}"

    @property
    def is_admin(self):
        return self.papel == PAPEL_ADMIN

    @property
    def is_sindico(self):
        return self.papel == PAPEL_SINDICO

    @property
    def is_morador(self):
        return self.papel == PAPEL_MORADOR

    # protocolo do Flask-Login
    @property
    def is_authenticated(self):
        return True

    @property
    def is_active(self):
        return True

    @property
    def is_anonymous(self):
        return False

    def get_id(self):
        return self.id

    def to_dict(self):
        return {
            "id": self.id,
            "papel": self.papel,
            "nome": self.nome,
            "email": self.email,
            "telefone": self.telefone,
            "matricula": self.matricula,
            "nome_condominio": self.nome_condominio,
            "condominio_selecionado": self.condominio_selecionado,
            "condominios": [dict(c) for c in self.condominios],
            "morador_id": self.morador_id,
            "unidade": self.unidade,
            "endereco": dict(self.endereco),
            "is_admin": self.is_admin,
            "is_sindico": self.is_sindico,
            "is_morador": self.is_morador,
        }

    @classmethod
    def from_dict(cls, dados):
        return cls(
            papel=dados["papel"],
            nome=dados.get("nome"),
            email=dados.get("email"),
            telefone=dados.get("telefone"),
            matricula=dados.get("matricula"),
            nome_condominio=dados.get("nome_condominio"),
            condominio_selecionado=dados.get("condominio_selecionado"),
            condominios=dados.get("condominios"),
            morador_id=dados.get("morador_id"),
            unidade=dados.get("unidade"),
            endereco=dados.get("endereco"),
            id=dados.get("id"),
        )


def persistir_sessao(sessao: SessaoUsuario):
    session[CHAVE_SESSAO] = sessao.to_dict()


def carregar_sessao() -> SessaoUsuario | None:
    dados = session.get(CHAVE_SESSAO)
    if not dados:
        return None
    try:
        return SessaoUsuario.from_dict(dados)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Sessão armazenada inválida, descartando: {e}")
        session.pop(CHAVE_SESSAO, None)
        return None


# ============================================
# RESOLUÇÃO DE CREDENCIAIS
# ============================================

def _login_admin(db, identificador, segredo):
    admin = db.query(Administrador).filter(
        Administrador.email == identificador.lower(),
        Administrador.ativo.is_(True)
    ).first()
    if not admin or not verificar_senha(segredo, admin.senha_hash):
        return None

    return SessaoUsuario(papel=PAPEL_ADMIN, nome=admin.nome, email=admin.email)


def _login_sindico(db, identificador, segredo):
    por_email = db.query(Condominio).filter(
        Condominio.email_legal == identificador.lower(),
        Condominio.ativo.is_(True)
    ).order_by(Condominio.id).all()
    por_matricula = db.query(Condominio).filter(
        Condominio.matricula == identificador,
        Condominio.ativo.is_(True)
    ).order_by(Condominio.id).all()

    # um mesmo e-mail pode administrar vários condomínios; a primeira ocorrência vence
    unicos = {}
    for condo in por_email + por_matricula:
        if condo.matricula in unicos:
            continue
        if verificar_senha(segredo, condo.senha_hash):
            unicos[condo.matricula] = condo

    if not unicos:
        return None

    condominios = list(unicos.values())
    primeiro = condominios[0]
    return SessaoUsuario(
        papel=PAPEL_SINDICO,
        nome=primeiro.nome_legal or primeiro.matricula,
        email=primeiro.email_legal or '',
        telefone=primeiro.telefone_legal,
        matricula=primeiro.matricula,
        nome_condominio=primeiro.nome_condominio or NOME_CONDOMINIO_PADRAO,
        condominio_selecionado=primeiro.matricula,
        condominios=[
            {"matricula": c.matricula, "nome_condominio": c.nome_condominio or NOME_CONDOMINIO_PADRAO}
            for c in condominios
        ],
        endereco=primeiro.endereco(),
    )


def _login_morador(db, identificador, segredo):
    cpf = somente_digitos(segredo)
    if not cpf:
        return None

    morador = db.query(Morador).filter(
        Morador.email == identificador.lower(),
        Morador.cpf == cpf
    ).order_by(Morador.id).first()
    if not morador:
        return None

    try:
        condo = db.query(Condominio).filter(
            Condominio.matricula == morador.matricula,
            Condominio.ativo.is_(True)
        ).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao obter condomínio {morador.matricula} do morador {morador.id}: {e}")
        raise CondominioIndisponivel(
            "Não foi possível obter os dados do condomínio associado a este morador."
        ) from e

    if not condo:
        logger.warning(f"Morador {morador.id} com condomínio {morador.matricula} inexistente ou inativo")
        raise CondominioIndisponivel()

    return SessaoUsuario(
        papel=PAPEL_MORADOR,
        nome=morador.nome_completo,
        email=morador.email or '',
        telefone=morador.telefone,
        morador_id=morador.id,
        matricula=morador.matricula,
        unidade=morador.unidade,
        nome_condominio=condo.nome_condominio or NOME_CONDOMINIO_PADRAO,
        condominio_selecionado=morador.matricula,
        endereco=condo.endereco(),
    )


def resolver_credenciais(db, identificador: str, segredo: str) -> SessaoUsuario:
    """Classifica a tentativa de login: administrador, síndico ou morador, nessa ordem.

    Levanta ``CredenciaisInvalidas`` sem indicar qual etapa falhou.
    """
    identificador = (identificador or "").strip()
    if not identificador or not segredo:
        raise CredenciaisInvalidas()

    try:
        sessao = (
            _login_admin(db, identificador, segredo)
            or _login_sindico(db, identificador, segredo)
            or _login_morador(db, identificador, segredo)
        )
    except SQLAlchemyError as e:
        logger.exception(f"Erro ao verificar credenciais: {e}")
        raise ErroInfraestrutura("Erro ao realizar login. Tente novamente.") from e

    if sessao is None:
        logger.warning(f"Login recusado para {identificador}")
        raise CredenciaisInvalidas()

    logger.info(f"Login de {sessao.papel} realizado: {sessao.id}")
    return sessao


def mensagem_boas_vindas(sessao: SessaoUsuario) -> str:
    if sessao.is_morador:
        return "Login de morador realizado com sucesso!"
    return "Login realizado com sucesso!"


def efetuar_login(db, identificador: str, segredo: str):
    """Fronteira pública do login: nunca propaga exceções.

    Retorna ``(sessao, None)`` em caso de sucesso ou ``(None, erro)``.
    """
    try:
        sessao = resolver_credenciais(db, identificador, segredo)
    except ErroCondominio as e:
        flash(e.mensagem, 'error')
        return None, e
    except Exception as e:
        logger.exception(f"Erro ao realizar login: {e}")
        erro = ErroInfraestrutura("Erro ao realizar login. Tente novamente.")
        flash(erro.mensagem, 'error')
        return None, erro

    login_user(sessao)
    persistir_sessao(sessao)
    flash(mensagem_boas_vindas(sessao), 'success')
    return sessao, None


def efetuar_logout():
    logout_user()
    session.pop(CHAVE_SESSAO, None)
    flash("Logout realizado com sucesso", 'info')


# ============================================
# TROCA DE CONDOMÍNIO
# ============================================

def trocar_condominio(db, sessao: SessaoUsuario, matricula: str) -> bool:
    if not sessao.is_sindico or not sessao.condominios:
        logger.warning(f"Troca de condomínio negada para {sessao.id}")
        return False

    alvo = next((c for c in sessao.condominios if c["matricula"] == matricula), None)
    if not alvo:
        logger.warning(f"{sessao.id} tentou trocar para condomínio não administrado: {matricula}")
        return False

    try:
        condo = db.query(Condominio).filter_by(matricula=matricula).first()
    except SQLAlchemyError as e:
        logger.exception(f"Erro ao obter detalhes do condomínio {matricula}: {e}")
        return False

    if not condo:
        logger.warning(f"Condomínio {matricula} não encontrado na troca")
        return False

    sessao.matricula = alvo["matricula"]
    sessao.nome_condominio = alvo["nome_condominio"]
    sessao.condominio_selecionado = alvo["matricula"]
    sessao.endereco = condo.endereco()

    if has_request_context():
        persistir_sessao(sessao)
    logger.info(f"{sessao.id} trocou para o condomínio {matricula}")
    return True


# ============================================
# ADMINISTRADOR INICIAL
# ============================================

def garantir_administrador(db, email: str | None, senha: str | None, nome: str | None = None):
    """Cria o administrador do sistema se ainda não existir. Nunca sobrescreve a senha."""
    if not email or not senha:
        logger.warning("ADMIN_EMAIL/ADMIN_PASSWORD não definidos; nenhum administrador criado.")
        return None

    email = email.strip().lower()
    existente = db.query(Administrador).filter_by(email=email).first()
    if existente:
        return existente

    admin = Administrador(nome=nome or "Administrador", email=email, senha_hash=hash_senha(senha))
    try:
        db.add(admin)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info(f"Administrador {email} criado.")
    return admin
