from sqlalchemy import Enum
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def enum_type(enum_cls, length: int = 20) -> Enum:
    # Store the enum's value ("active"), not its member name ("ACTIVE").
    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
    )
