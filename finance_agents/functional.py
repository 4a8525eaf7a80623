from abc import ABC, abstractmethod
from typing import Callable, Generic, Iterable, TypeVar

from finance_agents.domain import Budget, BudgetRecommendation, Category

T = TypeVar('T')
U = TypeVar('U')
E = TypeVar('E')


class Maybe(Generic[T], ABC):

    @abstractmethod
    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        pass

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_some(self) -> bool:
        pass

    def is_none(self) -> bool:
        return not self.is_some()


class Some(Maybe[T]):

    def __init__(self, value: T):
        self._value = value

    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        return Some(f(self._value))

    def get_or_else(self, default: T) -> T:
        return self._value

    def is_some(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Some({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Some) and self._value == other._value


class Nothing(Maybe[T]):

    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        return Nothing()

    def get_or_else(self, default: T) -> T:
        return default

    def is_some(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "Nothing()"

    def __eq__(self, other) -> bool:
        return isinstance(other, Nothing)


class Either(Generic[E, T], ABC):
    """Right carries a value, Left carries an error dict."""

    @abstractmethod
    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        pass

    @abstractmethod
    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        pass

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_right(self) -> bool:
        pass

    def is_left(self) -> bool:
        return not self.is_right()

    @abstractmethod
    def get_error(self) -> E:
        pass


class Right(Either[E, T]):

    def __init__(self, value: T):
        self._value = value

    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        return Right(f(self._value))

    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        return f(self._value)

    def get_or_else(self, default: T) -> T:
        return self._value

    def is_right(self) -> bool:
        return True

    def get_error(self) -> E:
        raise ValueError("Cannot get error from Right")

    def __repr__(self) -> str:
        return f"Right({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Right) and self._value == other._value


class Left(Either[E, T]):

    def __init__(self, error: E):
        self._error = error

    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        return Left(self._error)

    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        return Left(self._error)

    def get_or_else(self, default: T) -> T:
        return default

    def is_right(self) -> bool:
        return False

    def get_error(self) -> E:
        return self._error

    def __repr__(self) -> str:
        return f"Left({self._error!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Left) and self._error == other._error


def find_category(cats: Iterable[Category], cat_id: str) -> Maybe[Category]:
    for cat in cats:
        if cat.id == cat_id:
            return Some(cat)
    return Nothing()


def find_budget(budgets: Iterable[Budget], cat_id: str) -> Maybe[Budget]:
    for b in budgets:
        if b.category_id == cat_id:
            return Some(b)
    return Nothing()


def validate_budget_amount(amount: float, cat_id: str) -> Either[dict, float]:
    if amount <= 0:
        return Left({
            "error": "invalid_budget_amount",
            "message": f"Budget for category {cat_id} must be positive",
            "category_id": cat_id,
            "amount": amount,
        })
    return Right(amount)


def apply_recommendation(
    budgets: tuple[Budget, ...], rec: BudgetRecommendation
) -> Either[dict, tuple[Budget, ...]]:
    """Return budgets with the recommended amount applied to its category.

    An existing budget keeps its id; otherwise an unsaved budget is appended.
    """
    def _apply(amount: float) -> tuple[Budget, ...]:
        if find_budget(budgets, rec.category_id).is_some():
            return tuple(
                Budget(
                    id=b.id,
                    category_id=b.category_id,
                    amount=amount if b.category_id == rec.category_id else b.amount,
                    category_name=b.category_name,
                )
                for b in budgets
            )
        return budgets + (Budget(category_id=rec.category_id, amount=amount, category_name=rec.category_name),)

    return validate_budget_amount(rec.recommended_budget, rec.category_id).map(_apply)
