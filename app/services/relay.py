"""
Conversation Relay - One chat turn from prompt to debited reply.

Admission is checked before the LLM call; the debit happens after it.
Usage accounting failures are logged and the reply is returned with no
account snapshot.
"""

from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import EntitlementError, InvalidRequestError, LLMProviderError, LLMTimeoutError
from app.models.domain import AccountData, ChatReply, MessageRole, PersonaData, UsageSource
from app.models.pricing import FALLBACK_MODEL
from app.observability.logging import get_logger
from app.observability.metrics import metrics
from app.services.ledger import EntitlementLedger
from app.services.llm_client import DEFAULT_SYSTEM_PROMPT, LLMCompletion, OpenRouterClient
from app.services.messages import MessageService
from app.services.personas import PersonaService
from app.services.usage import resolve_tokens

logger = get_logger(__name__)

APOLOGY_REPLY = "I apologize, but I couldn't generate a response. Please try again."


def build_system_prompt(persona: PersonaData) -> str:
    """Persona instruction followed by the user's own instruction."""
    parts = [p.strip() for p in (persona.instruction, persona.user_instruction) if p and p.strip()]
    if not parts:
        return DEFAULT_SYSTEM_PROMPT
    return "\n\n".join(parts)


class ConversationRelay:
    """Gate, forward, record and debit a single chat turn."""

    def __init__(
        self,
        session: AsyncSession,
        ledger: EntitlementLedger,
        llm: OpenRouterClient,
    ) -> None:
        self.session = session
        self.ledger = ledger
        self.llm = llm
        self.personas = PersonaService(session)
        self.messages = MessageService(session)

    async def send(self, account_id: UUID, persona_id: UUID, prompt: str) -> ChatReply:
        """
        Relay one prompt to the persona's model.

        Raises:
            InvalidRequestError: Blank prompt
            AccountNotFoundError: Unknown account
            QuotaExceededError: Monthly allowance used up
            PersonaNotFoundError: Persona missing or not owned by the account
            LLMTimeoutError: Provider did not answer in time
            LLMProviderError: Provider failed on the fallback model too
        """
        if not prompt or not prompt.strip():
            raise InvalidRequestError("message is required")

        account = await self.ledger.get_by_id(account_id)
        self.ledger.require_admission(account)
        persona = await self.personas.get_persona(account_id, persona_id)

        completion = await self._complete_with_fallback(persona, prompt)
        if completion is None:
            logger.warning(
                "chat_reply_degraded", account_id=str(account_id), persona_id=str(persona_id)
            )
            return ChatReply(
                content=APOLOGY_REPLY,
                tokens_used=0,
                model_used=None,
                degraded=True,
                account=account,
            )

        tokens, estimated = resolve_tokens(
            completion.total_tokens, prompt, completion.content, completion.model
        )
        if estimated:
            metrics.tokens_estimated_total.inc()

        await self._record_messages(account_id, persona_id, prompt, completion, tokens)
        updated = await self._debit(account_id, tokens, completion.model)

        return ChatReply(
            content=completion.content,
            tokens_used=tokens,
            model_used=completion.model,
            tokens_estimated=estimated,
            account=updated,
        )

    async def _complete_with_fallback(
        self, persona: PersonaData, prompt: str
    ) -> LLMCompletion | None:
        """Primary model, then one retry on the fallback model. None if both came back blank."""
        model = persona.model_id or FALLBACK_MODEL.value
        can_fall_back = model != FALLBACK_MODEL.value

        try:
            completion = await self.llm.complete(model, build_system_prompt(persona), prompt)
        except LLMTimeoutError:
            raise
        except LLMProviderError as exc:
            if not can_fall_back:
                raise
            logger.warning("llm_primary_failed", model=model, error=exc.message)
            completion = None

        if completion is not None and not completion.is_blank:
            return completion
        if not can_fall_back:
            return None

        metrics.llm_fallbacks_total.inc()
        logger.info("llm_fallback_attempt", primary_model=model, fallback=FALLBACK_MODEL.value)
        fallback = await self.llm.complete(FALLBACK_MODEL.value, DEFAULT_SYSTEM_PROMPT, prompt)
        if fallback.is_blank:
            return None
        return fallback

    async def _record_messages(
        self,
        account_id: UUID,
        persona_id: UUID,
        prompt: str,
        completion: LLMCompletion,
        tokens: int,
    ) -> None:
        try:
            await self.messages.save_message(account_id, persona_id, MessageRole.USER, prompt)
            await self.messages.save_message(
                account_id,
                persona_id,
                MessageRole.ASSISTANT,
                completion.content,
                tokens_used=tokens,
                model_used=completion.model,
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            metrics.record_error("SQLAlchemyError", "save_messages")
            logger.exception(
                "chat_messages_save_failed", account_id=str(account_id), persona_id=str(persona_id)
            )

    async def _debit(self, account_id: UUID, tokens: int, model: str) -> AccountData | None:
        try:
            return await self.ledger.debit(
                account_id, tokens, model_id=model, source=UsageSource.CHAT
            )
        except (EntitlementError, SQLAlchemyError) as exc:
            metrics.record_error(type(exc).__name__, "chat_debit")
            logger.exception(
                "chat_debit_failed", account_id=str(account_id), tokens=tokens, model=model
            )
            return None
