import datetime
from decimal import Decimal

from babel.dates import format_date
from babel.numbers import format_currency

from models import Despesa, Receita, SaldoCondominio

CATEGORIAS = {
    'taxa_condominio': 'Taxa de Condomínio',
    'reserva_area_comum': 'Reserva Área Comum',
    'taxa_extra': 'Taxa Extra',
    'multa': 'Multa',
    'outros_receita': 'Outros (Receita)',
    'energia': 'Energia',
    'agua': 'Água',
    'manutencao': 'Manutenção',
    'gas': 'Gás',
    'limpeza': 'Limpeza',
    'produtos': 'Produtos',
    'imposto': 'Imposto',
    'seguranca': 'Segurança',
    'sistema_condominio': 'Sistema Condomínio',
    'outros_despesa': 'Outros (Despesa)',
}


def nome_categoria(codigo: str) -> str:
    return CATEGORIAS.get(codigo, codigo)


def dinheiro_br(valor) -> str:
    return format_currency(Decimal(valor or 0), 'BRL', locale='pt_BR')


def formatar_mes_referencia(mes_referencia):
    """'2025-06' -> '06/2025'; outros formatos passam inalterados."""
    if not mes_referencia:
        return '-'
    partes = mes_referencia.split('-')
    if len(partes) == 2 and len(partes[0]) == 4:
        return f"{partes[1]}/{partes[0]}"
    return mes_referencia


def intervalo_competencia(competencia: str):
    try:
        ano, mes = (int(p) for p in competencia.split('-'))
        inicio = datetime.date(ano, mes, 1)
    except (AttributeError, ValueError):
        raise ValueError(f"Competência inválida: {competencia}")
    fim = (inicio + datetime.timedelta(days=32)).replace(day=1)
    return inicio, fim


def ultimos_12_meses(hoje=None):
    hoje = hoje or datetime.date.today()
    meses = []
    ano, mes = hoje.year, hoje.month
    for _ in range(12):
        d = datetime.date(ano, mes, 1)
        meses.append({
            "value": d.strftime('%Y-%m'),
            "label": format_date(d, format='MMMM yyyy', locale='pt_BR'),
        })
        mes -= 1
        if mes == 0:
            ano, mes = ano - 1, 12
    return meses


def _lancamento(item):
    return {
        "id": item.id,
        "categoria": item.categoria,
        "categoria_nome": nome_categoria(item.categoria),
        "valor": str(item.valor),
        "valor_formatado": dinheiro_br(item.valor),
        "mes_referencia": formatar_mes_referencia(item.mes_referencia),
        "data_pagamento": item.data_pagamento.isoformat() if item.data_pagamento else None,
        "observacoes": item.observacoes,
    }


def prestacao_de_contas(db, matricula: str, competencia: str):
    """Receitas e despesas pagas no mês, com os saldos inicial (estimado) e final."""
    inicio, fim = intervalo_competencia(competencia)

    receitas = db.query(Receita).filter(
        Receita.matricula == matricula,
        Receita.data_pagamento.isnot(None),
        Receita.data_pagamento >= inicio,
        Receita.data_pagamento < fim
    ).order_by(Receita.data_pagamento).all()

    despesas = db.query(Despesa).filter(
        Despesa.matricula == matricula,
        Despesa.data_pagamento.isnot(None),
        Despesa.data_pagamento >= inicio,
        Despesa.data_pagamento < fim
    ).order_by(Despesa.data_pagamento).all()

    total_receitas = sum((Decimal(r.valor) for r in receitas), Decimal('0'))
    total_despesas = sum((Decimal(d.valor) for d in despesas), Decimal('0'))

    saldo = db.query(SaldoCondominio).filter_by(matricula=matricula).first()
    saldo_final = Decimal(saldo.saldo) if saldo else Decimal('0')
    saldo_inicial = saldo_final - total_receitas + total_despesas

    return {
        "competencia": competencia,
        "receitas": [_lancamento(r) for r in receitas],
        "despesas": [_lancamento(d) for d in despesas],
        "total_receitas": total_receitas,
        "total_despesas": total_despesas,
        "saldo_inicial": saldo_inicial,
        "saldo_final": saldo_final,
    }
