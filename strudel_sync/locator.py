"""Find the live CodeMirror view inside a page we do not control.

Strudel never exports its editor, so the view is dug out of the page with
an ordered list of lookup strategies, from the most specific (a property
CodeMirror hangs on its own DOM nodes) to the most generic (a bounded
crawl over everything reachable from the editor container). Every
strategy is a read-only page function returning the view or ``null``;
a candidate is only accepted after a structural check that it has a
document with a length and a callable ``dispatch``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from playwright.async_api import Error as PlaywrightError

from .config import BridgeConfig
from .models import EditorHandle

logger = logging.getLogger(__name__)

# Shared prelude: ``isView`` is the structural check, ``viewOf`` also
# unwraps CodeMirror's ContentView objects that point back at their view.
_SHAPE = """
  const isView = (v) => {
    try {
      return !!v && typeof v === "object" && typeof v.dispatch === "function"
        && !!v.state && !!v.state.doc && typeof v.state.doc.length === "number";
    } catch (e) {
      return false;
    }
  };
  const viewOf = (v) => {
    if (!v || typeof v !== "object") return null;
    if (isView(v)) return v;
    try {
      if (isView(v.view)) return v.view;
      if (v.rootView && isView(v.rootView.view)) return v.rootView.view;
    } catch (e) {}
    return null;
  };
"""

DIRECT_PROPERTY_JS = """(editorSel) => {%s
  const el = document.querySelector(editorSel);
  if (!el) return null;
  for (const key of ["cmView", "editorView", "view"]) {
    const found = viewOf(el[key]);
    if (found) return found;
  }
  return null;
}""" % _SHAPE

BACK_REFERENCE_JS = """([contentSel, limit]) => {%s
  let node = document.querySelector(contentSel);
  let steps = 0;
  while (node && node !== document.documentElement && steps <= limit) {
    const found = viewOf(node.cmView);
    if (found) return found;
    node = node.parentElement;
    steps++;
  }
  return null;
}""" % _SHAPE

OWN_PROPERTY_JS = """(editorSel) => {%s
  const el = document.querySelector(editorSel);
  if (!el) return null;
  for (const key of Object.getOwnPropertyNames(el)) {
    let value;
    try {
      value = el[key];
    } catch (e) {
      continue;
    }
    const found = viewOf(value);
    if (found) return found;
  }
  return null;
}""" % _SHAPE

COMPONENT_TREE_JS = """([selectors, maxDepth]) => {%s
  const PREFIXES = ["__reactFiber$", "__reactInternalInstance$", "__reactContainer$", "_reactRootContainer"];
  const SLOTS = ["view", "editorView", "editor", "cmView", "codemirror", "mirror"];
  const inSlots = (obj) => {
    if (!obj || typeof obj !== "object") return null;
    for (const slot of SLOTS) {
      let v;
      try {
        v = obj[slot];
      } catch (e) {
        continue;
      }
      const found = viewOf(v) || (v && typeof v === "object" && viewOf(v.current)) || (v && viewOf(v.editor));
      if (found) return found;
    }
    return null;
  };
  const inHooks = (fiber) => {
    let hook = fiber.memoizedState;
    let n = 0;
    while (hook && typeof hook === "object" && n < maxDepth) {
      const s = hook.memoizedState;
      const found = viewOf(s) || (s && typeof s === "object" && (viewOf(s.current) || inSlots(s) || inSlots(s.current)));
      if (found) return found;
      hook = hook.next;
      n++;
    }
    return null;
  };
  for (const sel of selectors) {
    const el = document.querySelector(sel);
    if (!el) continue;
    const keys = Object.keys(el).filter((k) => PREFIXES.some((p) => k.startsWith(p)));
    for (const key of keys) {
      let fiber = el[key];
      const down = key.startsWith("__reactContainer$") || key === "_reactRootContainer";
      if (fiber && fiber._internalRoot) fiber = fiber._internalRoot.current;
      let depth = 0;
      while (fiber && typeof fiber === "object" && depth < maxDepth) {
        const found = inSlots(fiber.memoizedProps) || inSlots(fiber.stateNode) || inHooks(fiber);
        if (found) return found;
        fiber = down ? fiber.child : fiber.return;
        depth++;
      }
    }
  }
  return null;
}""" % _SHAPE

RECURSIVE_SEARCH_JS = """([containerSel, maxDepth]) => {%s
  const container = document.querySelector(containerSel);
  if (!container) return null;
  const seen = new WeakSet();
  const search = (obj, depth) => {
    if (!obj || typeof obj !== "object" || seen.has(obj)) return null;
    seen.add(obj);
    const found = viewOf(obj);
    if (found) return found;
    if (depth >= maxDepth) return null;
    for (const key of Object.keys(obj)) {
      if (key.startsWith("_")) continue;
      let value;
      try {
        value = obj[key];
      } catch (e) {
        continue;
      }
      const hit = search(value, depth + 1);
      if (hit) return hit;
    }
    return null;
  };
  for (const el of [container, ...container.querySelectorAll("*")]) {
    const hit = search(el, 0);
    if (hit) return hit;
  }
  return null;
}""" % _SHAPE

CAPABILITY_JS = """(v) => {
  const result = {hasDocLength: false, canDispatch: false, connected: false};
  if (!v || typeof v !== "object") return result;
  try {
    result.hasDocLength = !!v.state && !!v.state.doc && typeof v.state.doc.length === "number";
    result.canDispatch = typeof v.dispatch === "function";
    result.connected = !v.dom || v.dom.isConnected;
  } catch (e) {}
  return result;
}"""

PAGE_SURVEY_JS = """([editorSel, contentSel]) => {
  const info = {};
  const editor = document.querySelector(editorSel);
  const content = document.querySelector(contentSel);
  info.editorFound = !!editor;
  if (editor) {
    info.editorKeys = Object.keys(editor).filter((k) => !k.startsWith("on") && k.length < 50);
    info.frameworkKeys = Object.keys(editor).filter((k) => /react|fiber|vue|svelte/i.test(k));
    const chain = [];
    let parent = editor.parentElement;
    while (parent && chain.length < 5) {
      chain.push({
        tag: parent.tagName,
        id: parent.id,
        classes: Array.from(parent.classList),
        keys: Object.keys(parent).filter((k) => /react|editor|cm/i.test(k) && k.length < 50),
      });
      parent = parent.parentElement;
    }
    info.parentChain = chain;
  }
  info.windowKeys = Object.keys(window).filter((k) => /editor|codemirror|repl|strudel|^cm/i.test(k));
  info.contentEditable = content ? content.getAttribute("contenteditable") : null;
  info.textPreview = content ? (content.textContent || "").slice(0, 100) : null;
  return info;
}"""


@dataclass(frozen=True)
class Strategy:
    name: str
    script: str
    args: Callable[[BridgeConfig], Any]


STRATEGIES = (
    Strategy("direct-property", DIRECT_PROPERTY_JS, lambda c: c.editor_selector),
    Strategy(
        "back-reference",
        BACK_REFERENCE_JS,
        lambda c: [c.content_selector, c.ancestor_limit],
    ),
    Strategy("own-property", OWN_PROPERTY_JS, lambda c: c.editor_selector),
    Strategy(
        "component-tree",
        COMPONENT_TREE_JS,
        lambda c: [[c.editor_selector, c.container_selector], c.fiber_depth],
    ),
    Strategy(
        "recursive-search",
        RECURSIVE_SEARCH_JS,
        lambda c: [c.container_selector, c.search_depth],
    ),
)


class Locator:
    """Resolves an :class:`EditorHandle` for each sync attempt.

    The last handle that worked is tried first, but only after it passes
    the capability check again and its view is still attached to the
    document. Strudel rebuilds its editor on hot reload, so a stale view
    falls through to the full strategy search.
    """

    def __init__(self, config=None, strategies=STRATEGIES):
        self.config = config or BridgeConfig()
        self.strategies = strategies
        self.last_good = None

    async def locate(self, page):
        reused = await self._reuse_last_good()
        if reused is not None:
            return reused

        for strategy in self.strategies:
            handle = await self.attempt(page, strategy)
            if handle is not None:
                logger.debug(f"Editor view found via {strategy.name}")
                self.last_good = handle
                return handle

        logger.info("Editor view not found by any strategy")
        return None

    async def attempt(self, page, strategy):
        try:
            js = await page.evaluate_handle(strategy.script, strategy.args(self.config))
        except PlaywrightError as e:
            logger.debug(f"{strategy.name}: {e}")
            return None

        handle = await self.check(js, strategy.name)
        if handle is None:
            await EditorHandle(js, strategy.name).dispose()
            logger.debug(f"{strategy.name}: no match")
        return handle

    async def check(self, js, strategy):
        try:
            caps = await js.evaluate(CAPABILITY_JS)
        except PlaywrightError as e:
            logger.debug(f"{strategy}: capability check failed: {e}")
            return None
        handle = EditorHandle(
            js,
            strategy,
            has_doc_length=bool(caps.get("hasDocLength")),
            can_dispatch=bool(caps.get("canDispatch")),
        )
        if not handle.valid or not caps.get("connected"):
            return None
        return handle

    async def _reuse_last_good(self):
        previous, self.last_good = self.last_good, None
        if previous is None:
            return None
        handle = await self.check(previous.js, previous.strategy)
        if handle is None:
            logger.debug(f"Last view from {previous.strategy} is stale")
            await previous.dispose()
            return None
        self.last_good = handle
        return handle

    async def probe(self, page):
        """Run every strategy against ``page`` and survey its structure."""
        matches = {}
        for strategy in self.strategies:
            handle = await self.attempt(page, strategy)
            matches[strategy.name] = handle is not None
            if handle is not None:
                await handle.dispose()
        try:
            survey = await page.evaluate(
                PAGE_SURVEY_JS,
                [self.config.editor_selector, self.config.content_selector],
            )
        except PlaywrightError as e:
            survey = {"error": str(e)}
        return {"strategies": matches, "survey": survey}
