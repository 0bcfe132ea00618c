from typing import Iterable, Union
from sqlalchemy.orm import Session

from ..core.errors import Conflict
from ..models.database import utcnow


def transition(db: Session, model, record_id, expected: Union[str, Iterable[str]], **values) -> None:
    """Compare-and-swap a status change.

    Issues ``UPDATE ... WHERE id = :id AND status IN (:expected)`` and bumps
    ``version``; raises Conflict when no row matched, i.e. a concurrent
    request already moved the record. Does not commit.
    """
    if isinstance(expected, str):
        expected = (expected,)
    expected = tuple(expected)
    values = dict(values)
    values["version"] = model.version + 1
    values.setdefault("updated_at", utcnow())
    matched = (
        db.query(model)
        .filter(model.id == record_id, model.status.in_(expected))
        .update(values, synchronize_session=False)
    )
    if matched != 1:
        raise Conflict(f"{model.__name__} is no longer {' or '.join(expected)}")
