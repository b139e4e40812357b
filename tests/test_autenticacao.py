import pytest
from sqlalchemy.exc import OperationalError

from autenticacao import (
    SessaoUsuario, _login_morador, garantir_administrador, hash_senha, resolver_credenciais, trocar_condominio,
    verificar_senha
)
from erros import CondominioIndisponivel, CredenciaisInvalidas, ErroInfraestrutura
from models import Administrador, Condominio, Morador


def _papeis_ativos(sessao):
    return [sessao.is_admin, sessao.is_sindico, sessao.is_morador].count(True)


def test_admin_login_case_insensitive(db):
    sessao = resolver_credenciais(db, "OPERADOR@MeuResidencial.com", "Senha@Operador1")
    assert sessao.is_admin
    assert sessao.email == "operador@meuresidencial.com"
    assert sessao.morador_id is None and sessao.unidade is None
    assert _papeis_ativos(sessao) == 1


def test_admin_login_ignores_other_tables(db, condominio, morador):
    condominio.ativo = False
    db.commit()
    sessao = resolver_credenciais(db, "operador@meuresidencial.com", "Senha@Operador1")
    assert sessao.is_admin


def test_admin_wrong_password(db):
    with pytest.raises(CredenciaisInvalidas):
        resolver_credenciais(db, "operador@meuresidencial.com", "errada")


def test_admin_password_is_stored_hashed(db):
    admin = db.query(Administrador).one()
    assert admin.senha_hash != "Senha@Operador1"
    assert verificar_senha("Senha@Operador1", admin.senha_hash)


def test_garantir_administrador_does_not_overwrite(db):
    antes = db.query(Administrador).one().senha_hash
    garantir_administrador(db, "operador@meuresidencial.com", "outra-senha")
    assert db.query(Administrador).count() == 1
    assert db.query(Administrador).one().senha_hash == antes


def test_garantir_administrador_without_env(db):
    assert garantir_administrador(db, None, None) is None


def test_manager_login_by_email(db, condominio):
    sessao = resolver_credenciais(db, "Sindica@Aquarela.com", "senha-sindica")
    assert sessao.is_sindico
    assert _papeis_ativos(sessao) == 1
    assert sessao.nome == "Maria Síndica"
    assert sessao.matricula == "AQ001"
    assert sessao.condominio_selecionado == "AQ001"
    assert sessao.nome_condominio == "Residencial Aquarela"
    assert sessao.endereco["rua"] == "Rua 06"
    assert sessao.condominios == [{"matricula": "AQ001", "nome_condominio": "Residencial Aquarela"}]


def test_manager_login_by_matricula(db, condominio):
    sessao = resolver_credenciais(db, "AQ001", "senha-sindica")
    assert sessao.is_sindico
    assert sessao.matricula == "AQ001"


def test_manager_inactive_condominium_rejected(db, condominio):
    condominio.ativo = False
    db.commit()
    with pytest.raises(CredenciaisInvalidas):
        resolver_credenciais(db, "sindica@aquarela.com", "senha-sindica")


def test_manager_with_several_condominiums(db, condominio):
    db.add(Condominio(
        matricula="AQ002",
        nome_condominio=None,
        email_legal="sindica@aquarela.com",
        senha_hash=hash_senha("senha-sindica"),
        ativo=True,
    ))
    db.commit()

    sessao = resolver_credenciais(db, "sindica@aquarela.com", "senha-sindica")
    assert [c["matricula"] for c in sessao.condominios] == ["AQ001", "AQ002"]
    assert sessao.condominios[1]["nome_condominio"] == "Condomínio"
    assert sessao.matricula == "AQ001"


def test_manager_condominium_listed_once_when_both_lookups_match(db):
    # matrícula igual ao e-mail: as duas buscas devolvem a mesma linha
    db.add(Condominio(
        matricula="gestao@predio.com",
        email_legal="gestao@predio.com",
        nome_condominio="Edifício Central",
        senha_hash=hash_senha("segredo123"),
        ativo=True,
    ))
    db.commit()

    sessao = resolver_credenciais(db, "gestao@predio.com", "segredo123")
    assert [c["matricula"] for c in sessao.condominios] == ["gestao@predio.com"]


def test_manager_only_condominiums_with_matching_password(db, condominio):
    db.add(Condominio(
        matricula="AQ003",
        email_legal="sindica@aquarela.com",
        senha_hash=hash_senha("outra-senha"),
        ativo=True,
    ))
    db.commit()

    sessao = resolver_credenciais(db, "sindica@aquarela.com", "senha-sindica")
    assert [c["matricula"] for c in sessao.condominios] == ["AQ001"]


def test_resident_login(db, morador):
    sessao = resolver_credenciais(db, "Joao@Email.com", "123.456.789-01")
    assert sessao.is_morador
    assert _papeis_ativos(sessao) == 1
    assert sessao.morador_id == morador.id
    assert sessao.unidade == "101"
    assert sessao.matricula == "AQ001"
    assert sessao.nome_condominio == "Residencial Aquarela"
    assert sessao.condominios == []


def test_resident_wrong_cpf(db, morador):
    with pytest.raises(CredenciaisInvalidas):
        resolver_credenciais(db, "joao@email.com", "00000000000")


def test_resident_with_inactive_condominium_gets_distinct_error(db, condominio, morador):
    condominio.ativo = False
    db.commit()

    with pytest.raises(CondominioIndisponivel) as exc:
        resolver_credenciais(db, "joao@email.com", "12345678901")
    assert not isinstance(exc.value, CredenciaisInvalidas)
    assert exc.value.mensagem == "Condomínio não encontrado ou inativo."


def test_resident_condominium_lookup_failure_rolls_back(db, condominio, morador, monkeypatch):
    consulta_original = db.query
    rollbacks = []

    def falha_no_condominio(modelo, *args, **kwargs):
        if modelo is Condominio:
            raise OperationalError("SELECT", {}, Exception("conexão perdida"))
        return consulta_original(modelo, *args, **kwargs)

    monkeypatch.setattr(db, "query", falha_no_condominio)
    monkeypatch.setattr(db, "rollback", lambda: rollbacks.append(True))

    with pytest.raises(CondominioIndisponivel) as exc:
        _login_morador(db, "joao@email.com", "12345678901")
    assert exc.value.mensagem == "Não foi possível obter os dados do condomínio associado a este morador."
    assert rollbacks == [True]


def test_unknown_identifier_gets_generic_error(db, condominio, morador):
    with pytest.raises(CredenciaisInvalidas) as desconhecido:
        resolver_credenciais(db, "ninguem@email.com", "qualquer")
    with pytest.raises(CredenciaisInvalidas) as senha_errada:
        resolver_credenciais(db, "sindica@aquarela.com", "qualquer")
    assert desconhecido.value.mensagem == senha_errada.value.mensagem


def test_empty_credentials(db):
    with pytest.raises(CredenciaisInvalidas):
        resolver_credenciais(db, "   ", "x")


def test_storage_failure_is_infrastructure_error(db, monkeypatch):
    def falha(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("conexão perdida"))

    monkeypatch.setattr(db, "query", falha)
    with pytest.raises(ErroInfraestrutura):
        resolver_credenciais(db, "operador@meuresidencial.com", "Senha@Operador1")


def test_sessao_role_invariant():
    with pytest.raises(ValueError):
        SessaoUsuario(papel="morador", nome="X", email="x@x.com", unidade="1")
    with pytest.raises(ValueError):
        SessaoUsuario(papel="sindico", nome="X", email="x@x.com", morador_id=3, unidade="1")
    with pytest.raises(ValueError):
        SessaoUsuario(papel="root", nome="X", email="x@x.com")


def test_sessao_dict_round_trip(db, condominio):
    sessao = resolver_credenciais(db, "sindica@aquarela.com", "senha-sindica")
    restaurada = SessaoUsuario.from_dict(sessao.to_dict())
    assert restaurada.to_dict() == sessao.to_dict()
    assert restaurada.get_id() == sessao.get_id()


def test_trocar_condominio(db, condominio):
    db.add(Condominio(
        matricula="AQ002",
        nome_condominio="Residencial Girassol",
        rua="Avenida Central",
        email_legal="sindica@aquarela.com",
        senha_hash=hash_senha("senha-sindica"),
        ativo=True,
    ))
    db.commit()
    sessao = resolver_credenciais(db, "sindica@aquarela.com", "senha-sindica")

    assert trocar_condominio(db, sessao, "AQ002") is True
    assert sessao.matricula == "AQ002"
    assert sessao.condominio_selecionado == "AQ002"
    assert sessao.nome_condominio == "Residencial Girassol"
    assert sessao.endereco["rua"] == "Avenida Central"
    assert len(sessao.condominios) == 2


def test_trocar_condominio_not_administered(db, condominio):
    db.add(Condominio(matricula="OUTRO", senha_hash=hash_senha("x"), ativo=True))
    db.commit()
    sessao = resolver_credenciais(db, "sindica@aquarela.com", "senha-sindica")

    assert trocar_condominio(db, sessao, "OUTRO") is False
    assert sessao.matricula == "AQ001"


def test_trocar_condominio_missing_row(db, condominio):
    sessao = resolver_credenciais(db, "sindica@aquarela.com", "senha-sindica")
    sessao.condominios.append({"matricula": "SUMIU", "nome_condominio": "Fantasma"})

    assert trocar_condominio(db, sessao, "SUMIU") is False
    assert sessao.matricula == "AQ001"


def test_trocar_condominio_resident_denied(db, morador):
    sessao = resolver_credenciais(db, "joao@email.com", "12345678901")
    assert trocar_condominio(db, sessao, "AQ001") is False


def test_verificar_senha_with_corrupted_hash():
    assert verificar_senha("x", "nao-e-bcrypt") is False
    assert verificar_senha("x", None) is False
