"""CLI entrypoint for the post-generation engine."""

from __future__ import annotations

import argparse
import asyncio
import json

from utils.exceptions import ArticleNotFoundError, CooldownActiveError, RunInProgressError
from utils.logger import configure_from_settings
from webapp.runtime import get_coordinator, get_generation_client, get_preview_builder, load_seed


async def _refresh(owner_key: str) -> dict:
    coordinator = get_coordinator()
    try:
        outcome = await coordinator.trigger(owner_key)
    except CooldownActiveError as exc:
        cooldown_outcome = await coordinator.build_cooldown_outcome(owner_key, exc.seconds_remaining)
        return {
            "code": "COOLDOWN_ACTIVE",
            "seconds_remaining": exc.seconds_remaining,
            "outcome": cooldown_outcome.model_dump(mode="json"),
        }
    except RunInProgressError as exc:
        return {"code": "RUN_IN_PROGRESS", "message": exc.message}
    finally:
        await get_generation_client().aclose()
    return outcome.model_dump(mode="json")


async def _preview(owner_key: str, news_id) -> dict:
    try:
        preview = await get_preview_builder().build_preview(owner_key, news_id)
    except ArticleNotFoundError as exc:
        return {"code": "NEWS_NOT_FOUND", "message": exc.message}
    return preview.model_dump(mode="json")


def main() -> None:
    parser = argparse.ArgumentParser(description="Post generation CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--seed-file", default="")

    refresh = sub.add_parser("refresh")
    refresh.add_argument("--owner-key", required=True)
    refresh.add_argument("--seed-file", default="")

    preview = sub.add_parser("preview")
    preview.add_argument("--owner-key", required=True)
    preview.add_argument("--news-id", type=int, default=None)
    preview.add_argument("--seed-file", default="")

    args = parser.parse_args()
    configure_from_settings()

    if str(args.seed_file).strip():
        load_seed(args.seed_file)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("webapp.app:app", host=args.host, port=int(args.port))
        return

    if args.command == "refresh":
        print(json.dumps(asyncio.run(_refresh(args.owner_key)), ensure_ascii=False, indent=2))
        return

    if args.command == "preview":
        print(json.dumps(asyncio.run(_preview(args.owner_key, args.news_id)), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
