import os
import datetime

from dotenv import load_dotenv
from flask import Flask, request, flash, abort, jsonify, get_flashed_messages
from flask_login import LoginManager, login_required, current_user
from sqlalchemy import text

from database import Session, engine, init_db
from autenticacao import (
    carregar_sessao, efetuar_login, efetuar_logout, garantir_administrador, mensagem_boas_vindas,
    trocar_condominio, PAPEL_MORADOR, PAPEL_SINDICO
)
from erros import ErroCondominio, ReservaInvalida
from financeiro import dinheiro_br, prestacao_de_contas, ultimos_12_meses
from models import AreaComum, STATUS_APROVADA, STATUS_RECUSADA
from notificacoes import mail, notificar_status_reserva
from reservas import atualizar_status_reserva, criar_reserva, listar_reservas, parse_data, parse_hora

load_dotenv()

# ============================================
# FLASK
# ============================================

app = Flask(__name__)
app.secret_key = os.getenv("SECRET_KEY", "troque_esta_chave_por_uma_muito_secreta")

app.config['MAIL_SERVER'] = os.getenv('MAIL_SERVER', 'smtp.sendgrid.net')
app.config['MAIL_PORT'] = int(os.getenv('MAIL_PORT', '587'))
app.config['MAIL_USE_TLS'] = os.getenv('MAIL_USE_TLS', 'true').lower() == 'true'
app.config['MAIL_USERNAME'] = os.getenv('MAIL_USERNAME', 'apikey')
app.config['MAIL_PASSWORD'] = os.getenv('MAIL_PASSWORD')
app.config['MAIL_DEFAULT_SENDER'] = os.getenv('MAIL_DEFAULT_SENDER')
app.config['MAIL_SUPPRESS_SEND'] = os.getenv('MAIL_SUPPRESS_SEND', 'false').lower() == 'true'

mail.init_app(app)

# Garantir tabelas e administrador no boot
try:
    init_db()
    print("Tabelas garantidas (create_all).")
    _db = Session()
    try:
        garantir_administrador(_db, os.getenv("ADMIN_EMAIL"), os.getenv("ADMIN_PASSWORD"), os.getenv("ADMIN_NOME"))
    finally:
        _db.close()
except Exception as e:
    print("Falha ao preparar o banco no boot:", e)


# healthz/dbcheck
@app.get("/healthz")
def healthz(): return "ok", 200

@app.get("/dbcheck")
def dbcheck():
    try:
        with engine.connect() as c:
            c.execute(text("SELECT 1"))
        return "db ok", 200
    except Exception as e:
        return f"db fail: {e}", 500

# login manager
login_manager = LoginManager()
login_manager.init_app(app)

@login_manager.user_loader
def load_user(user_id):
    sessao = carregar_sessao()
    if sessao and sessao.get_id() == user_id:
        return sessao
    return None

@login_manager.unauthorized_handler
def nao_autenticado():
    return jsonify({"success": False, "message": "Faça login para continuar."}), 401

@app.errorhandler(403)
def acesso_negado(e):
    return jsonify({"success": False, "message": "Acesso restrito."}), 403

# ============================================
# HELPERS
# ============================================

def requer_papel(usuario, *papeis):
    if not usuario or not usuario.is_authenticated or usuario.papel not in papeis:
        abort(403)


def resposta_erro(erro: ErroCondominio):
    flash(erro.mensagem, 'error')
    return jsonify({"success": False, "message": erro.mensagem}), erro.status


def area_do_condominio(session_db, area_id):
    area = session_db.get(AreaComum, area_id)
    if not area or area.matricula != current_user.matricula:
        return None
    return area

# ============================================
# AUTENTICAÇÃO
# ============================================

@app.route('/api/login', methods=['POST'])
def api_login():
    data = request.get_json(silent=True) or {}
    identificador = data.get('identificador') or data.get('email')
    senha = data.get('senha')

    if not isinstance(identificador, str) or not isinstance(senha, str) or not identificador or not senha:
        flash('Por favor, preencha todos os campos', 'error')
        return jsonify({"success": False, "message": "Por favor, preencha todos os campos"}), 400

    session_db = Session()
    try:
        sessao, erro = efetuar_login(session_db, identificador, senha)
        if erro:
            return jsonify({"success": False, "message": erro.mensagem}), erro.status

        return jsonify({"success": True, "message": mensagem_boas_vindas(sessao), "user": sessao.to_dict()})
    finally:
        session_db.close()


@app.route('/api/logout', methods=['POST'])
@login_required
def api_logout():
    efetuar_logout()
    return jsonify({"success": True, "message": "Logout realizado com sucesso"})


@app.route('/api/sessao')
@login_required
def api_sessao():
    return jsonify({"success": True, "user": current_user.to_dict()})


@app.route('/api/notificacoes')
def api_notificacoes():
    mensagens = get_flashed_messages(with_categories=True)
    return jsonify([{"categoria": c, "mensagem": m} for c, m in mensagens])


@app.route('/api/condominio/trocar', methods=['POST'])
@login_required
def api_trocar_condominio():
    requer_papel(current_user, PAPEL_SINDICO)
    matricula = (request.get_json(silent=True) or {}).get('matricula')
    if not matricula:
        return jsonify({"success": False, "message": "Informe a matrícula do condomínio."}), 400

    session_db = Session()
    try:
        sessao = current_user._get_current_object()
        if not trocar_condominio(session_db, sessao, matricula):
            flash('Não foi possível alterar o condomínio.', 'error')
            return jsonify({"success": False, "message": "Não foi possível alterar o condomínio."}), 404

        mensagem = f"Condomínio alterado para {sessao.nome_condominio}"
        flash(mensagem, 'success')
        return jsonify({"success": True, "message": mensagem, "user": sessao.to_dict()})
    finally:
        session_db.close()

# ============================================
# ÁREAS COMUNS E RESERVAS
# ============================================

@app.route('/api/areas-comuns')
@login_required
def api_areas_comuns():
    requer_papel(current_user, PAPEL_SINDICO, PAPEL_MORADOR)
    session_db = Session()
    try:
        areas = session_db.query(AreaComum).filter_by(
            matricula=current_user.matricula
        ).order_by(AreaComum.nome).all()
        return jsonify([a.to_dict() for a in areas])
    finally:
        session_db.close()


@app.route('/api/areas-comuns/<int:area_id>/reservas', methods=['GET'])
@login_required
def api_listar_reservas(area_id):
    requer_papel(current_user, PAPEL_SINDICO, PAPEL_MORADOR)
    session_db = Session()
    try:
        if not area_do_condominio(session_db, area_id):
            return jsonify({"success": False, "message": "Área comum não encontrada."}), 404

        reservas = listar_reservas(session_db, area_id, request.args.get('data'))
        return jsonify([r.to_dict() for r in reservas])
    except ErroCondominio as e:
        return jsonify({"success": False, "message": e.mensagem}), e.status
    finally:
        session_db.close()


@app.route('/api/areas-comuns/<int:area_id>/reservas', methods=['POST'])
@login_required
def api_criar_reserva(area_id):
    if not current_user.is_morador or not current_user.morador_id:
        flash('Você precisa estar logado como morador para fazer uma reserva', 'error')
        return jsonify({"success": False, "message": "Você precisa estar logado como morador para fazer uma reserva"}), 403

    data = request.get_json(silent=True) or {}
    obrigatorios = [
        ('reservation_date', 'A data da reserva é obrigatória'),
        ('start_time', 'Hora inicial é obrigatória'),
        ('end_time', 'Hora final é obrigatória'),
    ]
    for campo, mensagem in obrigatorios:
        if not data.get(campo):
            return jsonify({"success": False, "message": mensagem}), 400

    session_db = Session()
    try:
        data_reserva = parse_data(data['reservation_date'])
        inicio = parse_hora(data['start_time'])
        fim = parse_hora(data['end_time'])
        if inicio >= fim:
            raise ReservaInvalida('A hora final deve ser posterior à hora inicial.')

        reserva = criar_reserva(
            session_db,
            current_user.morador_id,
            area_id,
            data_reserva,
            inicio,
            fim,
            observacoes=data.get('notes'),
        )
        flash('Reserva criada com sucesso!', 'success')
        return jsonify({"success": True, "message": "Reserva criada com sucesso!", "reserva": reserva.to_dict()}), 201
    except ErroCondominio as e:
        session_db.rollback()
        return resposta_erro(e)
    except Exception as e:
        session_db.rollback()
        app.logger.exception(f"Erro ao processar reserva: {e}")
        flash('Erro ao processar reserva. Tente novamente.', 'error')
        return jsonify({"success": False, "message": "Erro ao processar reserva. Tente novamente."}), 500
    finally:
        session_db.close()


def _decidir_reserva(reserva_id, status, mensagem):
    requer_papel(current_user, PAPEL_SINDICO)
    motivo = (request.get_json(silent=True) or {}).get('motivo')

    session_db = Session()
    try:
        reserva = atualizar_status_reserva(session_db, current_user, reserva_id, status, motivo)
        notificar_status_reserva(reserva)
        flash(mensagem, 'success')
        return jsonify({"success": True, "message": mensagem, "reserva": reserva.to_dict()})
    except ErroCondominio as e:
        session_db.rollback()
        return resposta_erro(e)
    except Exception as e:
        session_db.rollback()
        app.logger.exception(f"Erro ao atualizar reserva {reserva_id}: {e}")
        return jsonify({"success": False, "message": "Erro interno no servidor."}), 500
    finally:
        session_db.close()


@app.route('/api/reservas/<int:reserva_id>/aprovar', methods=['POST'])
@login_required
def api_aprovar_reserva(reserva_id):
    return _decidir_reserva(reserva_id, STATUS_APROVADA, 'Reserva aprovada!')


@app.route('/api/reservas/<int:reserva_id>/recusar', methods=['POST'])
@login_required
def api_recusar_reserva(reserva_id):
    return _decidir_reserva(reserva_id, STATUS_RECUSADA, 'Reserva recusada.')

# ============================================
# FINANCEIRO
# ============================================

@app.route('/api/financeiro/prestacao-contas')
@login_required
def api_prestacao_contas():
    requer_papel(current_user, PAPEL_SINDICO)
    competencia = request.args.get('competencia') or datetime.date.today().strftime('%Y-%m')

    session_db = Session()
    try:
        relatorio = prestacao_de_contas(session_db, current_user.matricula, competencia)
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    finally:
        session_db.close()

    for chave in ('total_receitas', 'total_despesas', 'saldo_inicial', 'saldo_final'):
        valor = relatorio[chave]
        relatorio[chave] = str(valor)
        relatorio[f"{chave}_formatado"] = dinheiro_br(valor)
    relatorio["meses"] = ultimos_12_meses()
    relatorio["condominio"] = {"matricula": current_user.matricula, "nome": current_user.nome_condominio}
    return jsonify(relatorio)


# Execução local (produção: gunicorn)
if __name__ == '__main__':
    app.run(debug=True)
