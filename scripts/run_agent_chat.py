"""Interactive console chat against the agent backend with repository-relative imports."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path


async def chat() -> None:
    from agent_client.bootstrap import build_agent_service, build_client  # type: ignore
    from agent_client.config import get_settings  # type: ignore

    settings = get_settings()
    client = build_client(settings)
    service = build_agent_service(settings, client=client)
    log = logging.getLogger("agent_chat")

    client.on_connection_change(lambda new, old: log.info("connection %s -> %s", old.value, new.value))
    client.on_reconnect_scheduled(lambda attempt, delay: log.info("reconnect #%s in %.1fs", attempt, delay))
    client.on_context_not_restored(
        lambda notice: print(f"[context lost: {notice.history_length} earlier exchange(s) not restored]")
    )

    history: list[dict] = []
    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "you> ")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line in {"/quit", "/exit"}:
                break
            try:
                reply = await service.send_message(line, history)
            except Exception as exc:  # noqa: BLE001
                print(f"[error] {type(exc).__name__}: {exc}")
                continue
            print(f"agent> {reply.content}")
            if reply.ui_intent is not None:
                print(f"       ({reply.ui_intent.type}: {reply.ui_intent.component})")
            history.append({"id": f"user_{len(history)}", "role": "user", "content": line})
            history.append(reply.model_dump(by_alias=True, exclude_none=True))
    finally:
        await client.aclose()


def main() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root))

    # Lazy import after adjusting sys.path
    from agent_client.config import get_settings  # type: ignore

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        asyncio.run(chat())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
