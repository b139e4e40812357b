import datetime
import logging

from sqlalchemy.exc import SQLAlchemyError

from database import tx
from erros import (
    AreaComumNaoEncontrada, ErroInfraestrutura, HorarioIndisponivel, MoradorNaoIdentificado,
    ReservaInvalida, ReservaNaoEncontrada
)
from models import (
    AreaComum, Morador, ReservaAreaComum, STATUS_APROVADA, STATUS_PENDENTE, STATUS_RECUSADA
)

logger = logging.getLogger(__name__)


def parse_hora(valor) -> datetime.time:
    if isinstance(valor, datetime.time):
        return valor
    for formato in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.datetime.strptime(valor, formato).time()
        except (TypeError, ValueError):
            continue
    raise ReservaInvalida(f"Horário inválido: {valor}")


def parse_data(valor) -> datetime.date:
    if isinstance(valor, datetime.datetime):
        return valor.date()
    if isinstance(valor, datetime.date):
        return valor
    try:
        return datetime.datetime.strptime(valor, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ReservaInvalida(f"Data inválida: {valor}")


def buscar_conflitos(db, area_id, data_reserva, inicio, fim):
    # intervalo fechado: reservas que apenas se tocam no limite também conflitam
    return db.query(ReservaAreaComum).filter(
        ReservaAreaComum.common_area_id == area_id,
        ReservaAreaComum.reservation_date == data_reserva,
        ReservaAreaComum.start_time <= fim,
        ReservaAreaComum.end_time >= inicio,
    ).all()


def criar_reserva(db, morador_id, area_id, data_reserva, inicio, fim, observacoes=None, hoje=None):
    """Reserva uma área comum se não houver sobreposição no mesmo dia.

    A verificação e a inserção acontecem na mesma transação, com a linha
    da área comum bloqueada (``SELECT ... FOR UPDATE``).
    """
    data_reserva = parse_data(data_reserva)
    inicio = parse_hora(inicio)
    fim = parse_hora(fim)

    try:
        morador = db.get(Morador, morador_id) if morador_id else None
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao obter informações do morador {morador_id}: {e}")
        raise ErroInfraestrutura("Erro ao obter informações do morador.") from e

    if not morador:
        raise MoradorNaoIdentificado()

    hoje = hoje or datetime.date.today()
    if data_reserva < hoje:
        raise ReservaInvalida("A data da reserva não pode ser no passado.")

    try:
        area = db.query(AreaComum).filter(AreaComum.id == area_id).with_for_update().first()
        if area is None or area.matricula != morador.matricula:
            db.rollback()
            raise AreaComumNaoEncontrada()

        conflitos = buscar_conflitos(db, area.id, data_reserva, inicio, fim)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Erro ao verificar disponibilidade da área {area_id}: {e}")
        raise ErroInfraestrutura("Erro ao verificar disponibilidade") from e

    if conflitos:
        db.rollback()
        logger.warning(
            f"Reserva recusada: área {area_id} em {data_reserva} "
            f"{inicio:%H:%M}-{fim:%H:%M} conflita com {[r.id for r in conflitos]}"
        )
        raise HorarioIndisponivel()

    reserva = ReservaAreaComum(
        common_area_id=area.id,
        resident_id=morador.id,
        reservation_date=data_reserva,
        start_time=inicio,
        end_time=fim,
        notes=observacoes,
        status=STATUS_PENDENTE,
    )
    try:
        with tx(db):
            db.add(reserva)
    except SQLAlchemyError as e:
        logger.exception(f"Erro ao criar reserva: {e}")
        raise ErroInfraestrutura("Erro ao criar reserva. Tente novamente.") from e

    logger.info(f"Reserva {reserva.id} criada: área {area.id}, morador {morador.id}, {data_reserva}")
    return reserva


def listar_reservas(db, area_id, data_reserva=None):
    q = db.query(ReservaAreaComum).filter(ReservaAreaComum.common_area_id == area_id)
    if data_reserva:
        q = q.filter(ReservaAreaComum.reservation_date == parse_data(data_reserva))
    return q.order_by(ReservaAreaComum.reservation_date, ReservaAreaComum.start_time).all()


def atualizar_status_reserva(db, sessao, reserva_id, status, motivo=None):
    if status not in (STATUS_APROVADA, STATUS_RECUSADA):
        raise ReservaInvalida("Status de reserva inválido.")

    reserva = db.query(ReservaAreaComum).join(AreaComum).filter(
        ReservaAreaComum.id == reserva_id,
        AreaComum.matricula == sessao.matricula
    ).first()
    if not reserva:
        raise ReservaNaoEncontrada()

    if reserva.status != STATUS_PENDENTE:
        raise ReservaInvalida("Esta reserva já foi processada.")

    try:
        with tx(db):
            reserva.status = status
            if status == STATUS_RECUSADA:
                reserva.motivo_recusa = motivo
    except SQLAlchemyError as e:
        logger.exception(f"Erro ao atualizar reserva {reserva_id}: {e}")
        raise ErroInfraestrutura("Erro ao atualizar reserva. Tente novamente.") from e

    logger.info(f"Reserva {reserva.id} {status} por {sessao.id}")
    return reserva
