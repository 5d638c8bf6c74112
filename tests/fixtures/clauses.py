"""One function written as two consecutive clauses sharing a contract."""

import pledge

clause_calls = []

pledge.pre("non-negative", n >= 0)
def factorial(n):
    clause_calls.append("first")
    return 1


def factorial(n):
    clause_calls.append("second")
    result = 1
    for i in range(2, n + 1):
        result *= i
    return result


def uncontracted(n):
    return -n
