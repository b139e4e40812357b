import datetime
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "chave-de-teste"
os.environ["ADMIN_EMAIL"] = "operador@meuresidencial.com"
os.environ["ADMIN_PASSWORD"] = "Senha@Operador1"
os.environ["ADMIN_NOME"] = "Operador"
os.environ["MAIL_SUPPRESS_SEND"] = "true"
os.environ["MAIL_DEFAULT_SENDER"] = "nao-responda@meuresidencial.com"
os.environ.pop("SENDGRID_API_KEY", None)

import pytest

from app import app as flask_app
from autenticacao import garantir_administrador, hash_senha
from database import Base, Session, engine
from models import AreaComum, Condominio, Morador, ReservaAreaComum


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session_db = Session()
    garantir_administrador(session_db, os.environ["ADMIN_EMAIL"], os.environ["ADMIN_PASSWORD"], os.environ["ADMIN_NOME"])
    try:
        yield session_db
    finally:
        session_db.close()


@pytest.fixture
def app(db):
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def condominio(db):
    condo = Condominio(
        matricula="AQ001",
        nome_condominio="Residencial Aquarela",
        rua="Rua 06",
        numero="244",
        bairro="Centro",
        cidade="Brasília",
        estado="DF",
        cep="70000000",
        nome_legal="Maria Síndica",
        email_legal="sindica@aquarela.com",
        senha_hash=hash_senha("senha-sindica"),
        ativo=True,
    )
    db.add(condo)
    db.commit()
    return condo


@pytest.fixture
def morador(db, condominio):
    m = Morador(
        matricula=condominio.matricula,
        nome_completo="João Morador",
        cpf="12345678901",
        email="joao@email.com",
        unidade="101",
    )
    db.add(m)
    db.commit()
    return m


@pytest.fixture
def salao(db, condominio):
    area = AreaComum(matricula=condominio.matricula, nome="Salão de Festas")
    db.add(area)
    db.commit()
    return area


@pytest.fixture
def data_futura():
    return datetime.date.today() + datetime.timedelta(days=7)


@pytest.fixture
def reserva_existente(db, salao, morador, data_futura):
    reserva = ReservaAreaComum(
        common_area_id=salao.id,
        resident_id=morador.id,
        reservation_date=data_futura,
        start_time=datetime.time(10, 0),
        end_time=datetime.time(12, 0),
        status="pending",
    )
    db.add(reserva)
    db.commit()
    return reserva
