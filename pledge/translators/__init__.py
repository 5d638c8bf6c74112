"""
AST translation passes: expression validation, old() resolution and predicate building
"""
