from typing import Any, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class ORMMapper:
    @staticmethod
    def one(item, schema: Type[T], **extra: Any) -> T:
        model = schema.model_validate(item)
        return model.model_copy(update=extra) if extra else model

    @staticmethod
    def maybe(item, schema: Type[T]) -> Optional[T]:
        if item is None:
            return None
        return schema.model_validate(item)

    @staticmethod
    def many(items: Iterable, schema: Type[T]) -> list[T]:
        return [schema.model_validate(item) for item in items]
