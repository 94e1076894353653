"""Sandboxed evaluation of webpack chunk scripts inside an offline browser page."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import BrowserContext, Page
from playwright.async_api import Error as PlaywrightError

from buildwatch.errors import MalformedAsset

logger = logging.getLogger(__name__)

# Runs the chunk against a throwaway receiver and records every module factory
# pushed onto a webpack queue, in push order. Holes in sparse module arrays are
# kept so indices line up with the chunk's own numbering.
_LOAD_CHUNK_JS = """
(source) => {
  const queueName = /^webpack(Jsonp|Chunk)/;
  const receiver = {};
  const globalsBefore = new Set(Object.keys(self));
  try {
    new Function(source).call(receiver);
  } catch (e) {
    return { error: String((e && e.message) || e), modules: [] };
  }
  const queues = [];
  for (const [name, value] of Object.entries(receiver)) {
    if (queueName.test(name) && Array.isArray(value)) queues.push(value);
  }
  for (const name of Object.keys(self)) {
    if (!globalsBefore.has(name) && queueName.test(name) && Array.isArray(self[name])) {
      queues.push(self[name]);
    }
  }
  const factories = [];
  for (const queue of queues) {
    for (const chunk of queue) {
      const modules = Array.isArray(chunk) ? chunk[1] : null;
      if (!modules) continue;
      if (Array.isArray(modules)) {
        for (let i = 0; i < modules.length; i++) factories.push(modules[i]);
      } else {
        for (const key of Object.keys(modules)) factories.push(modules[key]);
      }
    }
  }
  globalThis.__chunkFactories = factories;
  return {
    error: null,
    modules: factories.map((f) =>
      typeof f === 'function' ? Function.prototype.toString.call(f) : ''
    ),
  };
}
"""

# Calls one factory with a bare module object. A factory that throws is
# reported back as data so the caller can move on to the next candidate.
_EVALUATE_MODULE_JS = """
([index, marker]) => {
  const factory = globalThis.__chunkFactories[index];
  if (typeof factory !== 'function') return { error: 'not a function', exports: null };
  const module = {};
  try {
    factory.call({}, module);
  } catch (e) {
    return { error: String((e && e.message) || e), exports: null };
  }
  const exported = module.exports;
  if (!exported || typeof exported !== 'object' || !(marker in exported)) {
    return { error: null, exports: null };
  }
  const table = {};
  for (const [key, value] of Object.entries(exported)) {
    if (typeof value === 'string') {
      table[key] = value;
    } else {
      try {
        table[key] = value && typeof value === 'object' ? JSON.stringify(value) : String(value);
      } catch (e) {
        table[key] = String(value);
      }
    }
  }
  return { error: null, exports: table };
}
"""


class ChunkSession:
    """A loaded chunk whose module factories can be evaluated one at a time."""

    def __init__(self, page: Page, module_sources: list[str], timeout_ms: int):
        self.page = page
        self.module_sources = module_sources
        self.timeout_ms = timeout_ms

    async def evaluate_module(self, index: int, marker: str) -> Optional[dict[str, str]]:
        """Return the module's exports if they contain ``marker``, else None.

        A factory that throws while running is a rejection, not an error.
        """
        result = await _evaluate(
            self.page, _EVALUATE_MODULE_JS, [index, marker], self.timeout_ms,
        )
        if result.get("error"):
            logger.debug("Module %d rejected: %s", index, result["error"])
            return None
        return result.get("exports")


async def _evaluate(page: Page, script: str, arg, timeout_ms: int) -> dict:
    try:
        return await asyncio.wait_for(page.evaluate(script, arg), timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise MalformedAsset(f"Script evaluation exceeded {timeout_ms}ms") from e
    except PlaywrightError as e:
        raise MalformedAsset(f"Script sandbox failed: {e}") from e


class ScriptSandbox:
    """Evaluates untrusted chunk scripts in pages of an offline browser context.

    Every ``open_chunk`` call gets a fresh page, so concurrent extractions do
    not share any JavaScript state, and the page is closed afterwards.
    """

    def __init__(self, context: BrowserContext, timeout_ms: int = 15000):
        self.context = context
        self.timeout_ms = timeout_ms

    @asynccontextmanager
    async def open_chunk(self, script_text: str) -> AsyncIterator[ChunkSession]:
        page = await self.context.new_page()
        try:
            result = await _evaluate(page, _LOAD_CHUNK_JS, script_text, self.timeout_ms)
            if result.get("error"):
                raise MalformedAsset(f"Script asset could not be evaluated: {result['error']}")
            modules = result.get("modules") or []
            logger.debug("Chunk loaded with %d module factories", len(modules))
            yield ChunkSession(page, modules, self.timeout_ms)
        finally:
            await page.close()
