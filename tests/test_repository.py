import datetime as dt
import unittest

from codegenie.models import Conversation, Example, ProblemSpec
from codegenie.repository import (
    InMemoryConversationRepository,
    SqlAlchemyConversationRepository,
    build_repository,
)

T0 = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)


def _conversation(conversation_id: str, user_id: str | None, minutes: int) -> Conversation:
    conversation = Conversation(
        id=conversation_id,
        mode="counterexample",
        title=f"대화 {conversation_id}",
        user_id=user_id,
        problem_spec=ProblemSpec(
            source="PROGRAMMERS",
            source_id="12345",
            title="짝수와 홀수",
            examples=(Example(input="3", output="Odd"),),
        ),
        user_code="class Solution {}",
        code_language="java",
        topics=["math"],
        created_at=T0,
        updated_at=T0 + dt.timedelta(minutes=minutes),
    )
    conversation.append("assistant", "안녕하세요!")
    return conversation


class _RepositoryContract:
    def make_repository(self):
        raise NotImplementedError

    def setUp(self) -> None:
        self.repository = self.make_repository()

    def test_round_trip(self) -> None:
        original = _conversation("a", "u1", 0)
        self.repository.save(original)

        loaded = self.repository.find_by_id("a")

        self.assertEqual(loaded.to_dict(), original.to_dict())
        self.assertEqual(loaded.problem_spec, original.problem_spec)
        self.assertEqual(loaded.messages, original.messages)

    def test_missing_id(self) -> None:
        self.assertIsNone(self.repository.find_by_id("nope"))

    def test_save_overwrites(self) -> None:
        conversation = _conversation("a", "u1", 0)
        self.repository.save(conversation)
        conversation.title = "바뀐 제목"
        conversation.updated_at = T0 + dt.timedelta(minutes=5)
        self.repository.save(conversation)

        self.assertEqual(self.repository.find_by_id("a").title, "바뀐 제목")
        self.assertEqual(len(self.repository.find_all_ordered_by_updated_desc()), 1)

    def test_listing_order_and_user_filter(self) -> None:
        self.repository.save(_conversation("old", "u1", 0))
        self.repository.save(_conversation("other", "u2", 10))
        self.repository.save(_conversation("new", "u1", 20))

        self.assertEqual([c.id for c in self.repository.find_all_ordered_by_updated_desc()], ["new", "other", "old"])
        self.assertEqual(
            [c.id for c in self.repository.find_by_user_id_ordered_by_updated_desc("u1")],
            ["new", "old"],
        )
        self.assertEqual(self.repository.find_by_user_id_ordered_by_updated_desc("nobody"), [])

    def test_delete(self) -> None:
        self.repository.save(_conversation("a", None, 0))
        self.assertTrue(self.repository.delete_by_id("a"))
        self.assertFalse(self.repository.delete_by_id("a"))
        self.assertIsNone(self.repository.find_by_id("a"))


class InMemoryRepositoryTests(_RepositoryContract, unittest.TestCase):
    def make_repository(self):
        return InMemoryConversationRepository()

    def test_stored_copy_is_isolated(self) -> None:
        conversation = _conversation("a", "u1", 0)
        self.repository.save(conversation)
        conversation.append("user", "저장 후 변경")

        loaded = self.repository.find_by_id("a")
        loaded.title = "로컬 변경"

        fresh = self.repository.find_by_id("a")
        self.assertEqual(len(fresh.messages), 1)
        self.assertEqual(fresh.title, "대화 a")


class SqlAlchemyRepositoryTests(_RepositoryContract, unittest.TestCase):
    def make_repository(self):
        return SqlAlchemyConversationRepository("sqlite://")


class BuildRepositoryTests(unittest.TestCase):
    def test_empty_url_means_memory(self) -> None:
        self.assertIsInstance(build_repository(None), InMemoryConversationRepository)
        self.assertIsInstance(build_repository(""), InMemoryConversationRepository)

    def test_url_means_sqlalchemy(self) -> None:
        self.assertIsInstance(build_repository("sqlite://"), SqlAlchemyConversationRepository)


if __name__ == "__main__":
    unittest.main()
