"""
Contract core: data model, registration state, weaving and evaluation
"""
