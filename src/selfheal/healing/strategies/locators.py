"""Locator-based strategies for element_not_found failures.

The strategies query the page through an injected ``probe(selector)``
coroutine supplied by the browser engine, returning True when the selector
resolves to an element.
"""

import asyncio
import re
import time
from typing import Awaitable, Callable, List, NamedTuple, Optional, Sequence, Tuple

from ...models.healing_models import (
    ActionOutcome,
    FailureType,
    HealingAction,
    HealingAttemptResult,
    HealingContext,
    TestFailure,
)
from ..base import BaseHealingStrategy

LocatorProbe = Callable[[str], Awaitable[bool]]

_SELECTOR_IN_MESSAGE = re.compile(r"selector[:\s]+['\"]?([^\s'\"]+)", re.IGNORECASE)


def extract_selector(failure: TestFailure) -> Optional[str]:
    """Find the failing selector in the failure context or message."""
    custom = failure.context.custom
    for key in ("selector", "locator"):
        value = custom.get(key)
        if value:
            return str(value)

    match = _SELECTOR_IN_MESSAGE.search(failure.message or "")
    return match.group(1) if match else None


def _skip(description: str, message: str) -> HealingAction:
    return BaseHealingStrategy.create_action(
        "fallback_strategy", description, result=ActionOutcome.SKIPPED, message=message
    )


class WaitForElementStrategy(BaseHealingStrategy):
    """Poll for the original selector until it appears or the wait budget ends."""

    def __init__(
        self,
        probe: Optional[LocatorProbe] = None,
        wait_seconds: float = 5.0,
        poll_interval: float = 0.25,
        confidence: float = 0.6,
    ):
        super().__init__(
            "wait-for-element",
            "1.0.0",
            [FailureType.ELEMENT_NOT_FOUND, FailureType.TIMEOUT],
        )
        self.probe = probe
        self.wait_seconds = wait_seconds
        self.poll_interval = poll_interval
        self.confidence = confidence

    async def estimate_confidence(
        self, failure: TestFailure, context: HealingContext
    ) -> float:
        if self.probe is None or not extract_selector(failure):
            return 0.0
        return self.confidence

    async def do_heal(
        self, failure: TestFailure, context: HealingContext
    ) -> HealingAttemptResult:
        selector = extract_selector(failure)
        if self.probe is None or not selector:
            reason = "No locator probe configured" if selector else "No selector in failure"
            return self.failure_result(reason, [_skip("Wait for element skipped", reason)])

        deadline = time.monotonic() + self.wait_seconds
        polls = 0
        while True:
            polls += 1
            if await self.probe(selector):
                waited = self.wait_seconds - max(deadline - time.monotonic(), 0.0)
                action = self.create_action(
                    "wait_for_element",
                    f"Waited for element {selector}",
                    {"selector": selector, "polls": polls, "waited_seconds": round(waited, 3)},
                    ActionOutcome.SUCCESS,
                    "Element found after waiting",
                )
                return self.success_result(
                    [action], self.confidence, f"Element {selector} appeared after waiting"
                )
            if time.monotonic() + self.poll_interval > deadline:
                break
            await asyncio.sleep(self.poll_interval)

        action = self.create_action(
            "wait_for_element",
            f"Waited for element {selector}",
            {"selector": selector, "polls": polls, "waited_seconds": self.wait_seconds},
            ActionOutcome.FAILURE,
            "Element did not appear",
        )
        return self.failure_result(
            f"Element {selector} not found within {self.wait_seconds}s", [action]
        )


class IDFallbackStrategy(BaseHealingStrategy):
    """
    Recover a broken locator by trying ID selectors derived from it.

    Candidates, in order: the derived ID itself, prefix/suffix variations,
    then lower/upper-case variants, bounded by ``max_variations``.
    """

    DEFAULT_PREFIXES = ("btn", "button", "link", "input", "field", "form", "modal", "dialog")
    DEFAULT_SUFFIXES = ("-btn", "-button", "-link", "-input", "-field", "-form", "-modal", "-dialog")

    def __init__(
        self,
        probe: Optional[LocatorProbe] = None,
        max_variations: int = 10,
        prefixes: Sequence[str] = DEFAULT_PREFIXES,
        suffixes: Sequence[str] = DEFAULT_SUFFIXES,
        enable_variations: bool = True,
        enable_case_insensitive: bool = True,
        exact_confidence: float = 0.9,
        variation_confidence: float = 0.75,
    ):
        super().__init__("id-fallback", "1.0.0", [FailureType.ELEMENT_NOT_FOUND])
        self.probe = probe
        self.max_variations = max_variations
        self.prefixes = tuple(prefixes)
        self.suffixes = tuple(suffixes)
        self.enable_variations = enable_variations
        self.enable_case_insensitive = enable_case_insensitive
        self.exact_confidence = exact_confidence
        self.variation_confidence = variation_confidence

    @staticmethod
    def potential_id(selector: str) -> Optional[str]:
        """Derive the most likely element ID from a CSS/XPath/text selector."""
        if selector.startswith("#"):
            return selector[1:] or None

        text_match = re.search(r"text\(\)\s*=\s*['\"]([^'\"]+)['\"]", selector)
        if text_match:
            slug = re.sub(r"[^a-z0-9]+", "-", text_match.group(1).lower()).strip("-")
            return slug or None

        for pattern in (
            r"#([A-Za-z][\w-]*)",
            r"\.([A-Za-z][\w-]*)",
            r"\[([A-Za-z][\w-]*)\]",
            r"//([A-Za-z][\w-]*)",
        ):
            match = re.search(pattern, selector)
            if match:
                return match.group(1)
        return None

    def candidates(self, selector: str) -> List[str]:
        base = self.potential_id(selector)
        if not base:
            return []

        ids = [base]
        if self.enable_variations:
            for prefix in self.prefixes:
                ids.extend([f"{prefix}-{base}", f"{prefix}_{base}", f"{prefix}{base}"])
            for suffix in self.suffixes:
                ids.extend([f"{base}{suffix}", f"{base}_{suffix.lstrip('-')}"])
        if self.enable_case_insensitive:
            ids.extend([base.lower(), base.upper()])

        unique = list(dict.fromkeys(f"#{i}" for i in ids))
        if selector in unique:
            unique.remove(selector)
        return unique[: self.max_variations]

    async def estimate_confidence(
        self, failure: TestFailure, context: HealingContext
    ) -> float:
        selector = extract_selector(failure)
        if self.probe is None or not selector:
            return 0.0
        candidates = self.candidates(selector)
        if not candidates:
            return 0.0
        # The failing selector itself is never retried, so "#id" can only heal via a variation
        exact = f"#{self.potential_id(selector)}" in candidates
        return self.exact_confidence if exact else self.variation_confidence

    async def do_heal(
        self, failure: TestFailure, context: HealingContext
    ) -> HealingAttemptResult:
        selector = extract_selector(failure)
        if self.probe is None or not selector:
            reason = "No locator probe configured" if selector else "No selector in failure"
            return self.failure_result(reason, [_skip("ID fallback skipped", reason)])

        candidates = self.candidates(selector)
        if not candidates:
            reason = f"No ID candidates derivable from {selector}"
            return self.failure_result(reason, [_skip("ID fallback skipped", reason)])

        base = self.potential_id(selector)
        actions: List[HealingAction] = []
        for candidate in candidates:
            if not await self.probe(candidate):
                actions.append(
                    self.create_action(
                        "fallback_strategy",
                        f"Attempted ID selector: {candidate}",
                        {"selector": candidate},
                        ActionOutcome.FAILURE,
                        f"Element not found with ID selector: {candidate}",
                    )
                )
                continue

            exact = candidate == f"#{base}"
            actions.append(
                self.create_action(
                    "update_selector",
                    f"Updated locator to ID selector: {candidate}",
                    {"original_selector": selector, "new_selector": candidate},
                    ActionOutcome.SUCCESS,
                    f"Element found using ID selector: {candidate}",
                )
            )
            return self.success_result(
                actions,
                self.exact_confidence if exact else self.variation_confidence,
                f"Healed locator {selector} using {candidate}",
            )

        return self.failure_result("No ID-based locators were successful", actions)


class SelectorParts(NamedTuple):
    """Components parsed out of a failing selector."""

    tag: Optional[str]
    classes: Tuple[str, ...]
    attributes: Tuple[Tuple[str, Optional[str]], ...]
    element_id: Optional[str]
    text: Optional[str]


def parse_selector(selector: str) -> SelectorParts:
    """Split a CSS (or simple XPath text) selector into its components."""
    tag = re.match(r"^([A-Za-z][A-Za-z0-9]*)", selector)
    id_match = re.search(r"#([A-Za-z][\w-]*)", selector)
    text_match = re.search(r"text\(\)\s*=\s*['\"]([^'\"]+)['\"]", selector)

    attributes = []
    for name, value in re.findall(r"\[([^=\]]+)(?:=([^\]]+))?\]", selector):
        value = value.strip("'\"") if value else None
        attributes.append((name.strip(), value or None))

    return SelectorParts(
        tag=tag.group(1) if tag else None,
        classes=tuple(re.findall(r"\.([A-Za-z][\w-]*)", selector)),
        attributes=tuple(attributes),
        element_id=id_match.group(1) if id_match else None,
        text=text_match.group(1) if text_match else None,
    )


class CSSFallbackStrategy(BaseHealingStrategy):
    """
    Recover a broken locator by trying alternative CSS selectors.

    PATTERN: Candidates are generated from the parsed selector in a fixed
    order: attribute, class, pseudo-class, structural, then text-attribute
    selectors, bounded by ``max_variations``
    GOTCHA: Confidence depends on the kind of selector that matched; test
    attributes rank highest, wildcard structural selectors lowest
    """

    DEFAULT_ATTRIBUTES = (
        "data-testid", "data-test", "data-cy", "data-qa", "name", "type", "value", "placeholder",
    )
    DEFAULT_CLASSES = (
        "btn", "button", "link", "input", "field", "form", "modal", "dialog", "container", "wrapper",
    )
    PSEUDO_CLASSES = (":first-child", ":last-child", ":nth-child(1)", ":nth-child(2)")

    def __init__(
        self,
        probe: Optional[LocatorProbe] = None,
        max_variations: int = 8,
        common_attributes: Sequence[str] = DEFAULT_ATTRIBUTES,
        common_classes: Sequence[str] = DEFAULT_CLASSES,
        enable_attribute_selectors: bool = True,
        enable_pseudo_selectors: bool = True,
        enable_structural_selectors: bool = True,
        enable_text_selectors: bool = True,
    ):
        super().__init__(
            "css-fallback",
            "1.0.0",
            [FailureType.ELEMENT_NOT_FOUND, FailureType.TIMEOUT],
        )
        self.probe = probe
        self.max_variations = max_variations
        self.common_attributes = tuple(common_attributes)
        self.common_classes = tuple(common_classes)
        self.enable_attribute_selectors = enable_attribute_selectors
        self.enable_pseudo_selectors = enable_pseudo_selectors
        self.enable_structural_selectors = enable_structural_selectors
        self.enable_text_selectors = enable_text_selectors

    def candidates(self, selector: str) -> List[str]:
        parts = parse_selector(selector)
        found: List[str] = []

        if self.enable_attribute_selectors:
            for attr in self.common_attributes:
                for value in (parts.text, parts.element_id):
                    if value:
                        found.extend([f'[{attr}*="{value}"]', f'[{attr}="{value}"]'])
            for name, value in parts.attributes:
                if value:
                    found.extend([f'[{name}*="{value}"]', f'[{name}="{value}"]'])

        found.extend(f".{c}" for c in parts.classes)
        found.extend(f".{c}" for c in self.common_classes)
        if parts.classes:
            found.extend(f".{parts.classes[0]}.{c}" for c in self.common_classes)

        if self.enable_pseudo_selectors:
            for pseudo in self.PSEUDO_CLASSES:
                if parts.tag:
                    found.append(f"{parts.tag}{pseudo}")
                if parts.classes:
                    found.append(f".{parts.classes[0]}{pseudo}")

        if self.enable_structural_selectors:
            if parts.tag:
                found.extend([f"* > {parts.tag}", f"div > {parts.tag}", f"form > {parts.tag}"])
            if parts.classes:
                found.extend([f"* + .{parts.classes[0]}", f".{parts.classes[0]} + *"])

        if self.enable_text_selectors and parts.text:
            found.extend(f'[{attr}*="{parts.text}"]' for attr in ("title", "alt", "placeholder"))

        unique = [c for c in dict.fromkeys(found) if c != selector]
        return unique[: self.max_variations]

    @staticmethod
    def selector_confidence(candidate: str, selector: str) -> float:
        """Declared confidence for a matching candidate; later rules take precedence."""
        confidence = 0.6
        if "data-testid" in candidate or "data-test" in candidate:
            confidence = 0.9
        if candidate.startswith("."):
            confidence = 0.7
        core = re.sub(r"[#.]", "", selector)
        if core and core in candidate:
            confidence = 0.8
        if candidate.startswith("*"):
            confidence -= 0.2
        return max(0.0, min(confidence, 1.0))

    async def estimate_confidence(
        self, failure: TestFailure, context: HealingContext
    ) -> float:
        selector = extract_selector(failure)
        if self.probe is None or not selector or not self.candidates(selector):
            return 0.0
        return 0.6

    async def do_heal(
        self, failure: TestFailure, context: HealingContext
    ) -> HealingAttemptResult:
        selector = extract_selector(failure)
        if self.probe is None or not selector:
            reason = "No locator probe configured" if selector else "No selector in failure"
            return self.failure_result(reason, [_skip("CSS fallback skipped", reason)])

        candidates = self.candidates(selector)
        if not candidates:
            reason = f"No CSS candidates derivable from {selector}"
            return self.failure_result(reason, [_skip("CSS fallback skipped", reason)])

        actions: List[HealingAction] = []
        for candidate in candidates:
            if not await self.probe(candidate):
                actions.append(
                    self.create_action(
                        "fallback_strategy",
                        f"Attempted CSS selector: {candidate}",
                        {"selector": candidate},
                        ActionOutcome.FAILURE,
                        f"Element not found with CSS selector: {candidate}",
                    )
                )
                continue

            actions.append(
                self.create_action(
                    "update_selector",
                    f"Updated locator to CSS selector: {candidate}",
                    {"original_selector": selector, "new_selector": candidate},
                    ActionOutcome.SUCCESS,
                    f"Element found using CSS selector: {candidate}",
                )
            )
            return self.success_result(
                actions,
                self.selector_confidence(candidate, selector),
                f"Healed locator {selector} using {candidate}",
            )

        return self.failure_result("No CSS-based locators were successful", actions)
