"""JavaScript evaluated inside the observed game page."""

from __future__ import annotations

from mathcoach.capture.extractor import TIMER_SELECTORS

NOTIFY_BINDING = "__mathcoachNotify"
INPUT_BINDING = "__mathcoachInput"

_SELECTOR_LIST = ", ".join(f'"{selector}"' for selector in TIMER_SELECTORS)

# Elements that own a non-blank text node, in document order.
SNAPSHOT_SCRIPT = """
() => {
  const nodes = [];
  for (const element of document.querySelectorAll('*')) {
    let ownsText = false;
    for (const child of element.childNodes) {
      if (child.nodeType === Node.TEXT_NODE && child.textContent.trim()) {
        ownsText = true;
        break;
      }
    }
    if (!ownsText) continue;
    nodes.push({ text: element.textContent || '', height: element.offsetHeight || 0 });
  }
  const selectors = {};
  for (const selector of [%(selectors)s]) {
    const element = document.querySelector(selector);
    if (element) selectors[selector] = element.textContent || '';
  }
  const inputs = Array.from(document.querySelectorAll('input')).map((input) => ({
    type: input.type || 'text',
    id: input.id || '',
    value: input.value || '',
  }));
  return { nodes, selectors, inputs };
}
""" % {"selectors": _SELECTOR_LIST}

ANSWER_SCRIPT = """
() => {
  const input = document.querySelector('input[type="text"]')
    || document.querySelector('input[type="number"]')
    || document.querySelector('input')
    || document.querySelector('#answer');
  return input && typeof input.value === 'string' ? input.value.trim() : null;
}
"""

INPUT_STATUS_SCRIPT = """
() => {
  const input = document.querySelector('input');
  if (!input) return null;
  return { value: input.value, type: input.type, focused: document.activeElement === input };
}
"""

# Installed before every page load; waits for <body> when run early.
OBSERVER_SCRIPT = """
(() => {
  const install = () => {
    const observer = new MutationObserver(() => window.%(notify)s());
    observer.observe(document.body, {
      childList: true,
      subtree: true,
      characterData: true,
      attributes: true,
    });
    document.addEventListener('input', (event) => {
      if (event.target.tagName === 'INPUT') window.%(input)s(event.target.value);
    });
    for (const eventType of ['keydown', 'keyup', 'change', 'paste']) {
      document.addEventListener(eventType, (event) => {
        if (event.target.tagName !== 'INPUT') return;
        setTimeout(() => window.%(input)s(event.target.value), 1);
      });
    }
    window.%(notify)s();
  };
  if (document.body) {
    install();
  } else {
    document.addEventListener('DOMContentLoaded', install);
  }
})();
""" % {"notify": NOTIFY_BINDING, "input": INPUT_BINDING}
