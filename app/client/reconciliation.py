"""
Máquina de estados do modal de pagamento.

    waiting -> checking -> waiting | awaitingActivation | success | error
    awaitingActivation -> success | awaitingActivation
    waiting/checking -> error (expiração do pagamento)

PaymentReconciliationMachine só decide transições; PaymentModalSession liga a
máquina aos timers (polling, expiração) e ao BillingApiClient.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from app.client.api_client import ApiClientError, BillingApiClient

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = (
    "A confirmação do pagamento está demorando mais que o esperado. "
    "Se você já pagou, seu plano será ativado automaticamente em instantes."
)
EXPIRED_MESSAGE = "O código PIX expirou. Gere um novo pagamento para continuar."
ACTIVATION_FAILED_MESSAGE = "Não foi possível ativar seu plano agora. Tente novamente em alguns segundos."


class ModalState:
    WAITING = "waiting"
    CHECKING = "checking"
    AWAITING_ACTIVATION = "awaitingActivation"
    SUCCESS = "success"
    ERROR = "error"

    TERMINAL = (SUCCESS, ERROR)


@dataclass(frozen=True)
class StatusSnapshot:
    payment_approved: bool = False
    profile_activated: bool = False
    subscription_created: bool = False
    ready: bool = False

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "StatusSnapshot":
        if not isinstance(data, dict):
            raise ValueError(f"Resposta de status inesperada: {data!r}")
        approved = bool(data.get("paymentApproved"))
        activated = bool(data.get("profileActivated"))
        created = bool(data.get("subscriptionCreated"))
        # ready nunca é confiado isoladamente
        ready = bool(data.get("ready")) and approved and activated and created
        return cls(approved, activated, created, ready)


class PaymentReconciliationMachine:
    def __init__(self, max_attempts: int, on_success: Optional[Callable[[], None]] = None):
        if max_attempts < 1:
            raise ValueError("max_attempts deve ser >= 1")
        self.max_attempts = max_attempts
        self.on_success = on_success
        self.state = ModalState.WAITING
        self.attempts = 0
        self.error_message: Optional[str] = None
        self.manual_in_flight = False
        self.recheck_in_flight = False
        self._success_fired = False

    @property
    def is_terminal(self) -> bool:
        return self.state in ModalState.TERMINAL

    def _succeed(self) -> None:
        self.state = ModalState.SUCCESS
        self.error_message = None
        if self._success_fired:
            return
        self._success_fired = True
        if self.on_success is None:
            return
        try:
            self.on_success()
        except Exception as e:
            logger.error(f"Callback de compra concluída falhou: {e}", exc_info=True)

    def _fail(self, message: str) -> None:
        self.state = ModalState.ERROR
        self.error_message = message

    # Polling

    def begin_check(self) -> bool:
        """Inicia uma consulta de status. False quando não há o que consultar."""
        if self.state != ModalState.WAITING or self.attempts >= self.max_attempts:
            return False
        self.state = ModalState.CHECKING
        self.attempts += 1
        return True

    def apply_status(self, snapshot: StatusSnapshot) -> str:
        # Resposta que chega depois de expiração ou fechamento é descartada
        if self.state != ModalState.CHECKING:
            return self.state

        if snapshot.ready:
            self._succeed()
        elif snapshot.payment_approved and not snapshot.profile_activated:
            self.state = ModalState.AWAITING_ACTIVATION
        elif self.attempts >= self.max_attempts:
            self._fail(TIMEOUT_MESSAGE)
        else:
            self.state = ModalState.WAITING
        return self.state

    def apply_check_failure(self, message: Optional[str] = None) -> str:
        """Falha de rede conta como tentativa sem resposta."""
        if self.state != ModalState.CHECKING:
            return self.state
        if message:
            logger.warning(f"Consulta de status falhou (tentativa {self.attempts}): {message}")
        if self.attempts >= self.max_attempts:
            self._fail(TIMEOUT_MESSAGE)
        else:
            self.state = ModalState.WAITING
        return self.state

    def expire(self) -> bool:
        """Expiração do pagamento vence qualquer consulta em andamento."""
        if self.state not in (ModalState.WAITING, ModalState.CHECKING):
            return False
        self._fail(EXPIRED_MESSAGE)
        return True

    # Ativação manual

    def begin_manual(self) -> bool:
        if self.state != ModalState.AWAITING_ACTIVATION or self.manual_in_flight:
            return False
        self.manual_in_flight = True
        self.error_message = None
        return True

    def apply_manual_result(self, ok: bool, error_message: Optional[str] = None) -> str:
        if not self.manual_in_flight:
            return self.state
        self.manual_in_flight = False
        if self.state != ModalState.AWAITING_ACTIVATION:
            return self.state
        if ok:
            self._succeed()
        else:
            self.error_message = error_message or ACTIVATION_FAILED_MESSAGE
        return self.state

    def begin_recheck(self) -> bool:
        if self.state != ModalState.AWAITING_ACTIVATION or self.recheck_in_flight:
            return False
        self.recheck_in_flight = True
        return True

    def apply_recheck(self, snapshot: StatusSnapshot) -> str:
        if not self.recheck_in_flight:
            return self.state
        self.recheck_in_flight = False
        if self.state == ModalState.AWAITING_ACTIVATION and snapshot.ready:
            self._succeed()
        return self.state


class PaymentModalSession:
    """
    Um modal aberto: polling a cada `poll_interval` segundos até `max_attempts`
    consultas, mais o timer de expiração do pagamento (PIX). `close()` cancela
    os timers e faz qualquer resposta ainda em voo ser ignorada.
    """

    def __init__(
        self,
        client: BillingApiClient,
        payment_id: str,
        poll_interval: float = 5.0,
        max_attempts: int = 36,
        expires_in: Optional[float] = None,
        on_success: Optional[Callable[[], None]] = None,
    ):
        self.client = client
        self.payment_id = payment_id
        self.poll_interval = poll_interval
        self.expires_in = expires_in
        self.machine = PaymentReconciliationMachine(max_attempts, on_success)
        self._tasks: List[asyncio.Task] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._settled = asyncio.Event()
        self.closed = False

    @property
    def state(self) -> str:
        return self.machine.state

    def _mark_settled(self) -> None:
        if self.machine.state in (ModalState.AWAITING_ACTIVATION, ModalState.SUCCESS, ModalState.ERROR):
            self._settled.set()

    async def start(self) -> None:
        self._poll_task = asyncio.create_task(self._poll_loop())
        self._tasks.append(self._poll_task)
        if self.expires_in is not None:
            self._tasks.append(asyncio.create_task(self._expiry_timer()))

    async def _poll_loop(self) -> None:
        while not self.closed and self.machine.begin_check():
            try:
                data = await asyncio.to_thread(self.client.get_payment_status, self.payment_id)
                snapshot = StatusSnapshot.from_response(data)
            except (ApiClientError, requests.RequestException, ValueError) as e:
                if self.closed:
                    return
                self.machine.apply_check_failure(str(e))
            else:
                if self.closed:
                    return
                self.machine.apply_status(snapshot)

            self._mark_settled()
            if self.machine.state != ModalState.WAITING:
                return
            await asyncio.sleep(self.poll_interval)

    async def _expiry_timer(self) -> None:
        await asyncio.sleep(self.expires_in)
        if self.closed:
            return
        if self.machine.expire():
            logger.info(f"Pagamento {self.payment_id} expirou antes da confirmação")
            if self._poll_task is not None:
                self._poll_task.cancel()
            self._mark_settled()

    async def wait_settled(self, timeout: Optional[float] = None) -> str:
        """Espera até success, error, awaitingActivation ou o fechamento da sessão."""
        await asyncio.wait_for(self._settled.wait(), timeout)
        return self.machine.state

    async def activate_manually(self) -> str:
        if not self.machine.begin_manual():
            return self.machine.state
        try:
            await asyncio.to_thread(self.client.activate_payment, self.payment_id)
        except ApiClientError as e:
            if not self.closed:
                self.machine.apply_manual_result(False, e.message)
        except requests.RequestException as e:
            logger.warning(f"Ativação manual de {self.payment_id} sem resposta: {e}")
            if not self.closed:
                self.machine.apply_manual_result(False, ACTIVATION_FAILED_MESSAGE)
        else:
            if not self.closed:
                self.machine.apply_manual_result(True)
        return self.machine.state

    async def recheck(self) -> str:
        """Consulta o status de novo sem disparar a ativação manual."""
        if not self.machine.begin_recheck():
            return self.machine.state
        try:
            data = await asyncio.to_thread(self.client.get_payment_status, self.payment_id)
            snapshot = StatusSnapshot.from_response(data)
        except (ApiClientError, requests.RequestException, ValueError) as e:
            logger.warning(f"Nova consulta de {self.payment_id} falhou: {e}")
            self.machine.recheck_in_flight = False
            return self.machine.state
        if not self.closed:
            self.machine.apply_recheck(snapshot)
        return self.machine.state

    def close(self) -> None:
        self.closed = True
        # Quem espera em wait_settled não fica preso depois do fechamento
        self._settled.set()
        for task in self._tasks:
            task.cancel()
        self._tasks = []
