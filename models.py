import datetime

from sqlalchemy import (
    Column, Integer, String, Date, Time, DateTime, Numeric, Boolean, ForeignKey, Index, UniqueConstraint, func
)
from sqlalchemy.orm import relationship

from database import Base

# ============================================
# MODELOS
# ============================================

STATUS_PENDENTE = "pending"
STATUS_APROVADA = "approved"
STATUS_RECUSADA = "rejected"


class Administrador(Base):
    __tablename__ = "administradores"
    id = Column(Integer, primary_key=True)
    nome = Column(String(150), nullable=False)
    email = Column(String(120), unique=True, nullable=False)
    senha_hash = Column(String(255), nullable=False)
    ativo = Column(Boolean, default=True, nullable=False)
    criado_em = Column(DateTime, default=func.now())


class Condominio(Base):
    __tablename__ = "condominios"
    id = Column(Integer, primary_key=True)
    matricula = Column(String(50), unique=True, nullable=False)
    cnpj = Column(String(18), nullable=True)
    nome_condominio = Column(String(150), nullable=True)

    # endereço
    cep = Column(String(10), nullable=True)
    rua = Column(String(255), nullable=True)
    numero = Column(String(20), nullable=True)
    complemento = Column(String(100), nullable=True)
    bairro = Column(String(100), nullable=True)
    cidade = Column(String(100), nullable=True)
    estado = Column(String(2), nullable=True)

    # representante legal (síndico)
    nome_legal = Column(String(150), nullable=True)
    email_legal = Column(String(120), nullable=True, index=True)
    telefone_legal = Column(String(20), nullable=True)

    senha_hash = Column(String(255), nullable=False)
    ativo = Column(Boolean, default=True, nullable=False)
    data_cadastro = Column(Date, default=datetime.date.today)

    moradores = relationship("Morador", back_populates="condominio")
    areas_comuns = relationship("AreaComum", back_populates="condominio")

    def endereco(self):
        return {
            "rua": self.rua,
            "numero": self.numero,
            "complemento": self.complemento,
            "bairro": self.bairro,
            "cidade": self.cidade,
            "estado": self.estado,
            "cep": self.cep,
        }


class Morador(Base):
    __tablename__ = "moradores"
    id = Column(Integer, primary_key=True)
    matricula = Column(String(50), ForeignKey("condominios.matricula"), nullable=False)
    nome_completo = Column(String(150), nullable=False)
    cpf = Column(String(11), nullable=False)
    email = Column(String(120), nullable=True, index=True)
    telefone = Column(String(20), nullable=True)
    unidade = Column(String(20), nullable=False)

    condominio = relationship("Condominio", back_populates="moradores")
    reservas = relationship("ReservaAreaComum", back_populates="morador")

    __table_args__ = (
        UniqueConstraint('matricula', 'cpf', name='unique_cpf_per_condominium'),
        UniqueConstraint('matricula', 'unidade', name='unique_unit_per_condominium'),
    )


class AreaComum(Base):
    __tablename__ = "areas_comuns"
    id = Column(Integer, primary_key=True)
    matricula = Column(String(50), ForeignKey("condominios.matricula"), nullable=False)
    nome = Column(String(150), nullable=False)
    descricao = Column(String(500), nullable=True)
    capacidade = Column(Integer, nullable=True)
    horario_abertura = Column(Time, nullable=True)
    horario_fechamento = Column(Time, nullable=True)

    condominio = relationship("Condominio", back_populates="areas_comuns")
    reservas = relationship("ReservaAreaComum", back_populates="area_comum")

    def to_dict(self):
        return {
            "id": self.id,
            "nome": self.nome,
            "descricao": self.descricao,
            "capacidade": self.capacidade,
            "horario_abertura": self.horario_abertura.strftime("%H:%M") if self.horario_abertura else None,
            "horario_fechamento": self.horario_fechamento.strftime("%H:%M") if self.horario_fechamento else None,
        }


class ReservaAreaComum(Base):
    __tablename__ = "reservas_areas_comuns"
    id = Column(Integer, primary_key=True)
    common_area_id = Column(Integer, ForeignKey("areas_comuns.id"), nullable=False)
    resident_id = Column(Integer, ForeignKey("moradores.id"), nullable=False)
    reservation_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    notes = Column(String(500), nullable=True)
    status = Column(String(20), default=STATUS_PENDENTE, nullable=False)
    motivo_recusa = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=func.now())

    area_comum = relationship("AreaComum", back_populates="reservas")
    morador = relationship("Morador", back_populates="reservas")

    __table_args__ = (
        Index('ix_reserva_area_data', 'common_area_id', 'reservation_date'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "common_area_id": self.common_area_id,
            "resident_id": self.resident_id,
            "reservation_date": self.reservation_date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "notes": self.notes,
            "status": self.status,
            "motivo_recusa": self.motivo_recusa,
        }


# ============================================
# FINANCEIRO
# ============================================

class Receita(Base):
    __tablename__ = "receitas"
    id = Column(Integer, primary_key=True)
    matricula = Column(String(50), ForeignKey("condominios.matricula"), nullable=False)
    categoria = Column(String(50), nullable=False)
    valor = Column(Numeric(12, 2), nullable=False)
    mes_referencia = Column(String(7), nullable=True)
    data_pagamento = Column(Date, nullable=True)
    unidade = Column(String(20), nullable=True)
    observacoes = Column(String(500), nullable=True)


class Despesa(Base):
    __tablename__ = "despesas"
    id = Column(Integer, primary_key=True)
    matricula = Column(String(50), ForeignKey("condominios.matricula"), nullable=False)
    categoria = Column(String(50), nullable=False)
    valor = Column(Numeric(12, 2), nullable=False)
    mes_referencia = Column(String(7), nullable=True)
    data_vencimento = Column(Date, nullable=True)
    data_pagamento = Column(Date, nullable=True)
    observacoes = Column(String(500), nullable=True)


class SaldoCondominio(Base):
    __tablename__ = "saldos"
    id = Column(Integer, primary_key=True)
    matricula = Column(String(50), ForeignKey("condominios.matricula"), unique=True, nullable=False)
    saldo = Column(Numeric(12, 2), nullable=False, default=0)
    atualizado_em = Column(DateTime, default=func.now(), onupdate=func.now())
