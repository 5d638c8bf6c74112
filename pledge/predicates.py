"""
Predicate functions that are useful in contract specifications.

Both names are available inside every precondition, postcondition and check
without an import.
"""


def implies(p, q) -> bool:
    """
    Logical implication: does `p` imply `q`?

    >>> implies(True, False)
    False
    >>> implies(False, False)
    True
    """
    return bool(not p or q)


def xor(p, q) -> bool:
    """
    Logical exclusive or: is either `p` or `q` true, but not both?

    >>> xor(True, True)
    False
    >>> xor(False, True)
    True
    """
    return bool(p) != bool(q)
