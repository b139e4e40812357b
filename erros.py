class ErroCondominio(Exception):
    """Erro de domínio com mensagem pronta para o usuário."""
    mensagem = "Ocorreu um erro. Tente novamente."
    status = 400

    def __init__(self, mensagem=None):
        if mensagem:
            self.mensagem = mensagem
        super().__init__(self.mensagem)


# autenticação

class CredenciaisInvalidas(ErroCondominio):
    mensagem = "Credenciais inválidas ou usuário inativo. Tente novamente."
    status = 401


class CondominioIndisponivel(ErroCondominio):
    mensagem = "Condomínio não encontrado ou inativo."
    status = 403


# reservas

class MoradorNaoIdentificado(ErroCondominio):
    mensagem = "Morador não identificado. Faça login novamente."
    status = 403


class AreaComumNaoEncontrada(ErroCondominio):
    mensagem = "Área comum não encontrada."
    status = 404


class HorarioIndisponivel(ErroCondominio):
    mensagem = "Este horário já está reservado. Por favor, escolha outro horário."
    status = 409


class ReservaInvalida(ErroCondominio):
    status = 400


class ReservaNaoEncontrada(ErroCondominio):
    mensagem = "Reserva não encontrada."
    status = 404


# infraestrutura

class ErroInfraestrutura(ErroCondominio):
    mensagem = "Erro ao processar a solicitação. Tente novamente."
    status = 503
