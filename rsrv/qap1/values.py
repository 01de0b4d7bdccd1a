"""Result values decoded from QAP1 responses.

Every successful evaluation yields exactly one of the classes below. Scalars
hold their Python value in ``value``; vectors hold a tuple. Instances are
immutable once constructed.
"""

import numpy


class Value:
    """Base class of the decoded result variants."""

    __slots__ = ("value",)

    def __init__(self, value):
        object.__setattr__(self, "value", value)

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self):
        return f"{type(self).__name__}({self.value!r})"

    def __eq__(self, other):
        return type(other) is type(self) and self.value == other.value

    def __hash__(self):
        return hash((type(self).__name__, self.value))


class Char(Value):
    """Single character (DT_CHAR)."""
    __slots__ = ()


class Int(Value):
    """32-bit signed integer."""
    __slots__ = ()


class Double(Value):
    """64-bit float."""
    __slots__ = ()


class Null(Value):
    """R NULL. Carries the tag string ``"NULL"``."""
    __slots__ = ()

    def __init__(self, value="NULL"):
        super().__init__(value)


class Bool(Value):
    __slots__ = ()


class Str(Value):
    __slots__ = ()


class Vector(Value):
    """Base for the vector variants. Behaves as a read-only sequence."""

    __slots__ = ()
    dtype = object

    def __init__(self, values=()):
        super().__init__(tuple(values))

    def __len__(self):
        return len(self.value)

    def __iter__(self):
        return iter(self.value)

    def __getitem__(self, index):
        return self.value[index]

    def as_array(self):
        """Return the elements as a numpy array."""
        return numpy.array(self.value, dtype=self.dtype)


class IntVec(Vector):
    __slots__ = ()
    dtype = numpy.int32


class DoubleVec(Vector):
    __slots__ = ()
    dtype = numpy.float64


class BoolVec(Vector):
    __slots__ = ()
    dtype = numpy.bool_


class StrVec(Vector):
    __slots__ = ()
    dtype = object
