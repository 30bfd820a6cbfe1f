#!/usr/bin/env python3
"""
Command-line entry point.

    screen-locator locate --store elements.json --screenshot screen.png "Login button"
    screen-locator add --store elements.json --name "Login button" \\
        --description "Blue button labeled Login" --reference login.png
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from PIL import Image

from screen_locator.config import LocatorConfig
from screen_locator.elements import StoredElement
from screen_locator.errors import ConfigurationError
from screen_locator.locator_engine import ElementLocator
from screen_locator.models import OpenAIEmbedder, OpenAIGroundingModel, OpenAIPageDescriber, OpenAIValidationModel
from screen_locator.outcomes import Found, Interrupted, NotFound
from screen_locator.retrieval.memory_store import InMemoryElementStore
from screen_locator.screen import StaticScreenSource
from screen_locator.security.rate_limiter import RateLimiter
from screen_locator.security.validation import ValidationError


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="screen-locator", description="Locate UI elements on screenshots")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    loc = sub.add_parser("locate", help="Locate an element on a screenshot")
    loc.add_argument("description", help="Element description")
    loc.add_argument("--store", required=True, help="Element store JSON file")
    loc.add_argument("--screenshot", required=True, help="Screenshot image file")
    loc.add_argument("--data", default=None, help="Data for data-dependent elements")
    loc.add_argument("--model", default="gpt-4o", help="Vision model name")
    loc.add_argument("--page-relevance", action="store_true", help="Describe the page to rank candidates")
    loc.add_argument("--debug-dir", default=None, help="Directory for diagnostic images")

    add = sub.add_parser("add", help="Add an element to a store")
    add.add_argument("--store", required=True)
    add.add_argument("--name", required=True)
    add.add_argument("--description", required=True)
    add.add_argument("--anchors", default="")
    add.add_argument("--page-summary", default="")
    add.add_argument("--reference", default=None, help="Reference image of the element")
    add.add_argument("--zoom", action="store_true", help="Element needs a zoomed-in search")
    add.add_argument("--data-attribute", action="append", default=[], dest="data_attributes")
    return p


def _cmd_locate(args: argparse.Namespace) -> int:
    embed = OpenAIEmbedder()
    store = InMemoryElementStore.load(args.store, embed)
    limiter = RateLimiter()
    config = LocatorConfig.from_env(unattended=True, debug_dir=args.debug_dir)
    locator = ElementLocator(
        retriever=store,
        grounder=OpenAIGroundingModel(model=args.model, rate_limiter=limiter),
        validator=OpenAIValidationModel(model=args.model, rate_limiter=limiter),
        page_describer=OpenAIPageDescriber(model=args.model, rate_limiter=limiter) if args.page_relevance else None,
        screen=StaticScreenSource.from_file(args.screenshot),
        config=config,
    )
    outcome = locator.locate(args.description, element_data=args.data)
    if isinstance(outcome, Found):
        x1, y1, x2, y2 = outcome.region.to_pixel_box()
        print(json.dumps({"status": "found", "box": [x1, y1, x2, y2], "attempts": outcome.attempts}))
        return 0
    if isinstance(outcome, NotFound):
        print(json.dumps({"status": "not_found", "reason": outcome.reason, "detail": outcome.detail,
                          "attempts": outcome.attempts}))
        return 1
    if isinstance(outcome, Interrupted):
        print(json.dumps({"status": "interrupted", "reason": outcome.reason}))
    return 2


def _cmd_add(args: argparse.Namespace) -> int:
    embed = OpenAIEmbedder()
    path = Path(args.store)
    store = InMemoryElementStore.load(str(path), embed) if path.exists() else InMemoryElementStore(embed)
    reference = None
    if args.reference:
        with Image.open(args.reference) as img:
            reference = img.convert("RGB")
    element = StoredElement(
        name=args.name,
        own_description=args.description,
        anchor_description=args.anchors,
        page_summary=args.page_summary,
        reference_image=reference,
        requires_zoom=bool(args.zoom),
        data_dependent_attributes=tuple(args.data_attributes),
    )
    store.store(element)
    store.save(str(path))
    print(json.dumps({"status": "stored", "id": element.id}))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if args.command == "locate":
            return _cmd_locate(args)
        return _cmd_add(args)
    except (ConfigurationError, ValidationError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
