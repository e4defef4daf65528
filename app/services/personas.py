"""
Assistant Directory - Personas owned by an account.

NO DICTIONARIES - All operations use strongly typed domain models.
"""

from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Message, Persona
from app.exceptions import InvalidRequestError, PersonaNotFoundError
from app.models.domain import PersonaData, PersonaDraft
from app.models.pricing import DEFAULT_PERSONA_MODEL, is_known_model
from app.observability.logging import get_logger

logger = get_logger(__name__)


class PersonaService:
    """CRUD over the personas table, always scoped to the owning account."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_personas(
        self, account_id: UUID, drafts: list[PersonaDraft]
    ) -> list[PersonaData]:
        """Insert catalog picks for an account in one transaction."""
        if not drafts:
            raise InvalidRequestError("at least one persona is required")

        personas = [
            Persona(
                id=uuid4(),
                account_id=account_id,
                catalog_id=draft.catalog_id,
                name=draft.name.strip(),
                title=draft.title,
                image=draft.image,
                instruction=draft.instruction,
                user_instruction=draft.user_instruction,
                sample_questions=[q for q in draft.sample_questions if q],
                model_id=self._validated_model(draft.model_id),
            )
            for draft in drafts
        ]
        self.session.add_all(personas)
        await self.session.flush()
        await self.session.commit()
        logger.info("personas_inserted", account_id=str(account_id), count=len(personas))
        return [self._persona_to_domain(p) for p in personas]

    async def list_personas(self, account_id: UUID) -> list[PersonaData]:
        """All personas of an account, newest first."""
        stmt = (
            select(Persona)
            .where(Persona.account_id == account_id)
            .order_by(Persona.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [self._persona_to_domain(p) for p in result.scalars().all()]

    async def get_persona(self, account_id: UUID, persona_id: UUID) -> PersonaData:
        """
        Raises:
            PersonaNotFoundError: Missing or owned by another account
        """
        persona = await self._find_owned(account_id, persona_id)
        return self._persona_to_domain(persona)

    async def update_persona(
        self,
        account_id: UUID,
        persona_id: UUID,
        user_instruction: str | None = None,
        model_id: str | None = None,
    ) -> PersonaData:
        """Update the user's own instruction and/or the model a persona runs on."""
        persona = await self._find_owned(account_id, persona_id)
        if user_instruction is not None:
            persona.user_instruction = user_instruction
        if model_id is not None:
            persona.model_id = self._validated_model(model_id)

        await self.session.flush()
        await self.session.commit()
        logger.info(
            "persona_updated",
            account_id=str(account_id),
            persona_id=str(persona_id),
            model_id=persona.model_id,
        )
        return self._persona_to_domain(persona)

    async def delete_persona(self, account_id: UUID, persona_id: UUID) -> None:
        """Delete a persona and its conversation history."""
        persona = await self._find_owned(account_id, persona_id)
        await self.session.execute(
            delete(Message).where(
                Message.account_id == account_id, Message.persona_id == persona_id
            )
        )
        await self.session.delete(persona)
        await self.session.commit()
        logger.info("persona_deleted", account_id=str(account_id), persona_id=str(persona_id))

    async def _find_owned(self, account_id: UUID, persona_id: UUID) -> Persona:
        stmt = select(Persona).where(Persona.id == persona_id, Persona.account_id == account_id)
        result = await self.session.execute(stmt)
        persona = result.scalar_one_or_none()
        if persona is None:
            raise PersonaNotFoundError(persona_id)
        return persona

    @staticmethod
    def _validated_model(model_id: str | None) -> str:
        if not model_id:
            return DEFAULT_PERSONA_MODEL.value
        if not is_known_model(model_id):
            raise InvalidRequestError(f"unknown model: {model_id}")
        return model_id

    @staticmethod
    def _persona_to_domain(persona: Persona) -> PersonaData:
        return PersonaData(
            persona_id=persona.id,
            account_id=persona.account_id,
            catalog_id=persona.catalog_id,
            name=persona.name,
            title=persona.title,
            image=persona.image,
            instruction=persona.instruction,
            user_instruction=persona.user_instruction,
            sample_questions=tuple(persona.sample_questions or ()),
            model_id=persona.model_id,
            created_at=persona.created_at,
            updated_at=persona.updated_at,
        )
