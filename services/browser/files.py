"""Placing local documents into file inputs of a remote page.

The remote browser cannot read the local filesystem, so the document is sent
as base64 and rebuilt inside the page as a ``File`` in a ``DataTransfer``.
"""

import base64
from pathlib import Path

from playwright.sync_api import Page

FILE_INPUT_SELECTOR = 'input[type="file"]'

_INJECT_SCRIPT = """
(arg) => {
    const bytes = Uint8Array.from(atob(arg.data), (c) => c.charCodeAt(0));
    const file = new File([bytes], arg.name, { type: 'application/octet-stream' });
    const dataTransfer = new DataTransfer();
    dataTransfer.items.add(file);
    const input = document.querySelector(arg.selector);
    if (!input) {
        return false;
    }
    Object.defineProperty(input, 'files', { value: dataTransfer.files });
    input.dispatchEvent(new Event('change', { bubbles: true }));
    return true;
}
"""


def inject_file(page: Page, document: Path, selector: str = FILE_INPUT_SELECTOR) -> bool:
    """Assign ``document`` to the first file input matching ``selector``.

    Returns:
        True if the page had a matching input and received the file
    """
    encoded = base64.b64encode(document.read_bytes()).decode("ascii")
    attached = page.evaluate(
        _INJECT_SCRIPT, {"data": encoded, "name": document.name, "selector": selector}
    )
    return bool(attached)
