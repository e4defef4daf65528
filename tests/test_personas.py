"""
Tests for PersonaService (assistant directory).
"""

from uuid import uuid4

import pytest
from conftest import create_mock_persona, set_execute_result

from app.db.models import Persona
from app.exceptions import InvalidRequestError, PersonaNotFoundError
from app.models.domain import PersonaDraft
from app.models.pricing import DEFAULT_PERSONA_MODEL
from app.services.personas import PersonaService


def draft(**overrides) -> PersonaDraft:
    fields = {
        "catalog_id": 12,
        "name": "Tutor",
        "title": "Math tutor",
        "instruction": "Explain step by step.",
        "sample_questions": ("What is a derivative?", ""),
    }
    fields.update(overrides)
    return PersonaDraft(**fields)


class TestPersonaDraft:
    def test_blank_name_rejected(self):
        with pytest.raises(ValueError):
            PersonaDraft(catalog_id=1, name="  ")


class TestInsertPersonas:
    async def test_inserts_all_drafts(self, db_session):
        account_id = uuid4()

        result = await PersonaService(db_session).insert_personas(
            account_id, [draft(), draft(name="Critic", model_id="openai/gpt-4o-mini")]
        )

        rows = db_session.add_all.call_args[0][0]
        assert all(isinstance(row, Persona) for row in rows)
        assert [p.name for p in result] == ["Tutor", "Critic"]
        assert all(p.account_id == account_id for p in result)
        assert result[0].persona_id != result[1].persona_id
        db_session.commit.assert_awaited_once()

    async def test_missing_model_gets_default(self, db_session):
        result = await PersonaService(db_session).insert_personas(uuid4(), [draft()])
        assert result[0].model_id == DEFAULT_PERSONA_MODEL.value

    async def test_blank_sample_questions_dropped(self, db_session):
        result = await PersonaService(db_session).insert_personas(uuid4(), [draft()])
        assert result[0].sample_questions == ("What is a derivative?",)

    async def test_unknown_model_rejected(self, db_session):
        with pytest.raises(InvalidRequestError):
            await PersonaService(db_session).insert_personas(
                uuid4(), [draft(model_id="vendor/unknown")]
            )
        db_session.commit.assert_not_called()

    async def test_empty_list_rejected(self, db_session):
        with pytest.raises(InvalidRequestError):
            await PersonaService(db_session).insert_personas(uuid4(), [])


class TestReadPersonas:
    async def test_list(self, db_session):
        account_id = uuid4()
        rows = [create_mock_persona(account_id=account_id, name=n) for n in ("B", "A")]
        set_execute_result(db_session, rows=rows)

        result = await PersonaService(db_session).list_personas(account_id)

        assert [p.name for p in result] == ["B", "A"]

    async def test_get_owned(self, db_session):
        row = create_mock_persona()
        set_execute_result(db_session, row=row)

        result = await PersonaService(db_session).get_persona(row.account_id, row.id)

        assert result.persona_id == row.id
        assert result.sample_questions == ("Review this function",)

    async def test_get_missing_or_foreign(self, db_session):
        with pytest.raises(PersonaNotFoundError):
            await PersonaService(db_session).get_persona(uuid4(), uuid4())


class TestUpdatePersona:
    async def test_updates_instruction_and_model(self, db_session):
        row = create_mock_persona()
        set_execute_result(db_session, row=row)

        result = await PersonaService(db_session).update_persona(
            row.account_id,
            row.id,
            user_instruction="Answer in French.",
            model_id="google/gemini-2.5-flash-lite",
        )

        assert result.user_instruction == "Answer in French."
        assert result.model_id == "google/gemini-2.5-flash-lite"
        db_session.commit.assert_awaited_once()

    async def test_omitted_fields_untouched(self, db_session):
        row = create_mock_persona(user_instruction="Keep me")
        set_execute_result(db_session, row=row)

        result = await PersonaService(db_session).update_persona(row.account_id, row.id)

        assert result.user_instruction == "Keep me"
        assert result.model_id == "deepseek/deepseek-coder-33b-instruct"

    async def test_unknown_model_rejected(self, db_session):
        row = create_mock_persona()
        set_execute_result(db_session, row=row)

        with pytest.raises(InvalidRequestError):
            await PersonaService(db_session).update_persona(
                row.account_id, row.id, model_id="vendor/unknown"
            )


class TestDeletePersona:
    async def test_deletes_persona_and_history(self, db_session):
        row = create_mock_persona()
        set_execute_result(db_session, row=row)

        await PersonaService(db_session).delete_persona(row.account_id, row.id)

        # lookup + message delete
        assert db_session.execute.await_count == 2
        db_session.delete.assert_awaited_once_with(row)
        db_session.commit.assert_awaited_once()

    async def test_delete_missing(self, db_session):
        with pytest.raises(PersonaNotFoundError):
            await PersonaService(db_session).delete_persona(uuid4(), uuid4())
        db_session.delete.assert_not_called()
