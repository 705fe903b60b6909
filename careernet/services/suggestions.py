from sqlalchemy.ext.asyncio import AsyncSession

from careernet.repositories.connection import ConnectionRepository
from careernet.schemas.connection import Suggestions
from careernet.schemas.user import UserSummary
from careernet.utils.exceptions import ValidationError


class SuggestionService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = ConnectionRepository(db)

    async def suggest(self, user_id: int, limit: int = 12) -> Suggestions:
        """Suggest users the caller is neither connected to nor has a pending request with.

        Exclusions are evaluated against the graph as it is at query time.
        Candidates come back in random order, so repeated calls differ.
        """
        if limit < 1:
            raise ValidationError("Limit must be positive")

        rows = await self.repo.suggest(user_id, limit)
        return Suggestions(suggestions=[UserSummary.model_validate(dict(row._mapping)) for row in rows])
