from typing import Any, List

from google.cloud.firestore_v1.base_query import FieldFilter

from .enums import FirestoreOperators


class FirestoreField:
    """
    Class-level stand-in for a model attribute that turns comparisons
    into Firestore query filters.

    Examples
    --------
    >>> pending = FriendRequest.status == "pending"
    >>> incoming = FriendRequest.to_user_id == "u_42"

    Accessed on an **instance** the stored value is returned; accessed on
    the class the descriptor itself comes back so operators can be
    chained.  The filter is built on the Firestore name of the field
    (its alias), not the Python attribute name.
    """

    def __init__(self, field_name: str):
        self.field_name = field_name

    def __get__(self, instance, owner):
        if instance is None:
            return self
        return getattr(instance, self.field_name, None)

    def __str__(self) -> str:
        return str(self.field_name)

    __repr__ = __str__

    def __hash__(self) -> int:
        return hash(str(self.field_name))

    def _filter(self, op: FirestoreOperators, value: Any) -> FieldFilter:
        return FieldFilter(str(self.field_name), op.value, value)

    def __eq__(self, other):  # type: ignore[override]
        return self._filter(FirestoreOperators.EQ, other)

    def __ne__(self, other):  # type: ignore[override]
        return self._filter(FirestoreOperators.NE, other)

    def __lt__(self, other):
        return self._filter(FirestoreOperators.LT, other)

    def __le__(self, other):
        return self._filter(FirestoreOperators.LTE, other)

    def __gt__(self, other):
        return self._filter(FirestoreOperators.GT, other)

    def __ge__(self, other):
        return self._filter(FirestoreOperators.GTE, other)

    def in_(self, values: List[Any]) -> FieldFilter:
        return self._filter(FirestoreOperators.IN, values)

    def not_in_(self, values: List[Any]) -> FieldFilter:
        return self._filter(FirestoreOperators.NOT_IN, values)

    def array_contains(self, value: Any) -> FieldFilter:
        return self._filter(FirestoreOperators.ARRAY_CONTAINS, value)

    def array_contains_any(self, values: List[Any]) -> FieldFilter:
        return self._filter(FirestoreOperators.ARRAY_CONTAINS_ANY, values)
