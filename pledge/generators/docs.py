"""
Documentation fragments for contracted functions
"""

import inspect
from typing import List, Optional, Sequence

from ..core.models import Assertion, FunctionContract


def _assertion_line(assertion: Assertion) -> str:
    label = assertion.display_label
    return f"    {label}: {assertion.text}" if label else f"    {assertion.text}"


def _section(title: str, assertions: Sequence[Assertion]) -> List[str]:
    if not assertions:
        return []
    return [f"{title}:", *(_assertion_line(a) for a in assertions)]


def render_contract_docs(contract: FunctionContract) -> str:
    """
    Render doc fragments, preconditions and postconditions in declaration order.

    Example output:
        Preconditions:
            non_negative_x: x >= 0

        Postconditions:
            result >= 0.0
    """
    blocks = [inspect.cleandoc(fragment) for fragment in contract.doc_fragments]
    for title, assertions in (("Preconditions", contract.preconditions),
                              ("Postconditions", contract.postconditions)):
        lines = _section(title, assertions)
        if lines:
            blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def append_contract_docs(docstring: Optional[str], contract: FunctionContract) -> Optional[str]:
    """Return `docstring` extended with the rendered contract."""
    rendered = render_contract_docs(contract)
    if not rendered:
        return docstring
    base = inspect.cleandoc(docstring) if docstring else ""
    return f"{base}\n\n{rendered}" if base else rendered
