from __future__ import annotations
import os, re, time, json, logging, random
from typing import Dict, List, Optional
import requests

from .cache import SuggestionCache
from .missing_keys import HeuristicSuggester
from .suggester_base import Suggester

GEMINI_URL_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

# Literal braces are doubled; {payload} is the only formatting slot.
PROMPT_TEMPLATE = (
    "# You are a UI copywriter for a web application localized with next-intl.\n"
    "# For each missing translation key below, write the English UI text it should display.\n"
    "# RULES:\n"
    "- Use the namespace, the key name and the source code context to infer meaning.\n"
    "- Keep it short: buttons and labels are 1-4 words, no trailing period.\n"
    "- Error messages are full sentences ending with a period.\n"
    "- Keep ICU placeholders such as {{count}} or {{name}} if the context passes them.\n"
    "- Do NOT add/remove/reorder items.\n"
    "- Output MUST be a JSON array of objects like: [{{\"i\": 0, \"t\": \"...\"}}, {{\"i\": 1, \"t\": \"...\"}}, ...]\n"
    "INPUT JSON (array of objects with keys {{\"i\"}}, {{\"ns\"}}, {{\"key\"}}, {{\"context\"}}):\n"
    "{payload}\n"
)

MAX_PROMPT_CONTEXT = 300

# ```json ... ``` around the whole reply
_FENCE_RE = re.compile(r"^```[A-Za-z]*\s*(.*?)\s*```$", re.S)

class GeminiSuggester(Suggester):
    """
    Asks Gemini for a value per missing key. Answers are cached per
    (namespace, key, model); anything the model drops after all retries
    falls back to the heuristic suggestion.
    """

    def __init__(
        self,
        model: str,
        qps: float = 1.0,
        max_retries: int = 5,
        backoff_base: float = 1.5,
        cache: Optional[SuggestionCache] = None,
        logger: logging.Logger | None = None,
        timeout: float = 90,
    ):
        self.model = model
        self.api_key = os.getenv("GEMINI_API_KEY", "")
        if not self.api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable is not set")
        self.url = GEMINI_URL_TEMPLATE.format(model=model)
        self.qps = qps
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.timeout = timeout
        self.cache = cache
        self.logger = logger or logging.getLogger("i18n-nsfix")
        self.fallback = HeuristicSuggester()
        self.prompt_chars = 0
        self.completion_chars = 0
        self._next_slot = 0.0

    def _wait_turn(self) -> None:
        """Block until the next request slot allowed by `qps`, then book the one after it."""
        now = time.monotonic()
        if now < self._next_slot:
            time.sleep(self._next_slot - now)
        self._next_slot = max(now, self._next_slot) + 1.0 / max(self.qps, 0.01)

    def _generate(self, prompt: str) -> str:
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0, "response_mime_type": "application/json"},
        }
        resp = requests.post(
            self.url,
            headers={"Content-Type": "application/json"},
            params={"key": self.api_key},
            json=body,
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            raise RuntimeError(f"Gemini answered HTTP {resp.status_code}: {resp.text[:200]}")
        data = resp.json()
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise RuntimeError(f"No candidate text in Gemini reply: {str(data)[:200]}")

    def suggest_batch(self, items: List[dict]) -> List[str]:
        out: Dict[int, str] = {}
        pending: Dict[int, dict] = {}
        for i, it in enumerate(items):
            hit = self.cache.get(it["namespace"], it["key"], self.model) if self.cache else None
            if hit is not None:
                out[i] = hit
            else:
                pending[i] = it

        if pending:
            got = self._request(pending)
            for i, value in got.items():
                out[i] = value
                if self.cache:
                    self.cache.put(items[i]["namespace"], items[i]["key"], self.model, value)

        for i, it in enumerate(items):
            if i not in out:
                self.logger.warning(f"Falling back to heuristic value for {it['namespace']}.{it['key']}")
                out[i] = self.fallback.suggest(it["key"], it.get("context", ""))
        return [out[i] for i in range(len(items))]

    def _format_prompt(self, pending: Dict[int, dict]) -> str:
        objs = [
            {"i": i, "ns": it["namespace"], "key": it["key"], "context": (it.get("context") or "")[:MAX_PROMPT_CONTEXT]}
            for i, it in sorted(pending.items())
        ]
        return PROMPT_TEMPLATE.format(payload=json.dumps(objs, ensure_ascii=False))

    def _collect(self, text: str, asked: Dict[int, dict]) -> Dict[int, str]:
        """Map item index -> value from the model's reply. Tolerates a code
        fence or prose around the JSON array; raises ValueError when there
        is no array at all."""
        body = text.strip()
        fenced = _FENCE_RE.match(body)
        if fenced:
            body = fenced.group(1)
        try:
            arr = json.loads(body)
        except ValueError:
            lo, hi = body.find("["), body.rfind("]")
            if not 0 <= lo < hi:
                raise ValueError("Model output holds no JSON array")
            arr = json.loads(body[lo:hi + 1])
        if not isinstance(arr, list):
            raise ValueError("Model did not return a JSON array")
        got: Dict[int, str] = {}
        for obj in arr:
            if isinstance(obj, dict) and "i" in obj and isinstance(obj.get("t"), str):
                try:
                    i = int(obj["i"])
                except (TypeError, ValueError):
                    continue
                if i in asked and obj["t"].strip():
                    got[i] = obj["t"].strip()
        return got

    def _request(self, pending: Dict[int, dict]) -> Dict[int, str]:
        prompt = self._format_prompt(pending)
        for attempt in range(self.max_retries):
            self._wait_turn()
            try:
                text = self._generate(prompt)
                self.prompt_chars += len(prompt)
                self.completion_chars += len(text)
                got = self._collect(text, pending)
                if len(got) < len(pending):
                    missing = sorted(set(pending) - set(got))
                    self.logger.warning(
                        f"Gemini returned {len(got)} of {len(pending)} items; "
                        f"missing indices: {missing[:10]}{'...' if len(missing)>10 else ''}"
                    )
                return got
            except (requests.RequestException, RuntimeError, ValueError) as e:
                sleep = (self.backoff_base ** attempt) + random.uniform(0, 0.6)
                self.logger.warning(f"Gemini request failed ({e}); retrying in {sleep:.1f}s")
                time.sleep(sleep)
        self.logger.error(f"Gemini suggestion failed after {self.max_retries} attempts")
        return {}
