"""
Conversation History - Messages exchanged with a persona.
"""

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Message
from app.models.domain import MessageData, MessageRole

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_RECENT_LIMIT = 20


class MessageService:
    """Append and read conversation messages. Callers own the commit."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def save_message(
        self,
        account_id: UUID,
        persona_id: UUID,
        role: MessageRole,
        content: str,
        tokens_used: int = 0,
        model_used: str | None = None,
    ) -> Message:
        """Stage a message in the current transaction."""
        message = Message(
            account_id=account_id,
            persona_id=persona_id,
            role=role.value,
            content=content,
            tokens_used=tokens_used,
            model_used=model_used,
        )
        self.session.add(message)
        await self.session.flush()
        return message

    async def list_for_persona(
        self, account_id: UUID, persona_id: UUID, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[MessageData]:
        """The latest `limit` messages of a conversation, oldest first."""
        stmt = (
            select(Message)
            .where(Message.account_id == account_id, Message.persona_id == persona_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        rows = list(result.scalars().all())
        rows.reverse()
        return [self._message_to_domain(m) for m in rows]

    async def list_recent(
        self, account_id: UUID, limit: int = DEFAULT_RECENT_LIMIT
    ) -> list[MessageData]:
        """Newest messages across all of an account's personas."""
        stmt = (
            select(Message)
            .where(Message.account_id == account_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._message_to_domain(m) for m in result.scalars().all()]

    async def delete_for_persona(self, account_id: UUID, persona_id: UUID) -> int:
        """Delete a conversation. Returns the number of messages removed."""
        result = await self.session.execute(
            delete(Message).where(
                Message.account_id == account_id, Message.persona_id == persona_id
            )
        )
        await self.session.commit()
        return result.rowcount or 0

    @staticmethod
    def _message_to_domain(message: Message) -> MessageData:
        return MessageData(
            message_id=message.id,
            account_id=message.account_id,
            persona_id=message.persona_id,
            role=MessageRole(message.role),
            content=message.content,
            tokens_used=message.tokens_used,
            model_used=message.model_used,
            created_at=message.created_at,
        )
