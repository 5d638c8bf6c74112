"""
Text generated from bound contracts
"""

from .docs import append_contract_docs, render_contract_docs

__all__ = ["append_contract_docs", "render_contract_docs"]
