"""
Terminal chat front end.

Usage:
    python -m secure_chat.main "Say hello in exactly 5 words."
    python -m secure_chat.main            # interactive session

Replies are printed as they stream in. A failed request prints an
``Error: ...`` line; in an interactive session the next prompt follows.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
import threading

from secure_chat.config import Configuration
from secure_chat.llm.client import ChatClient
from secure_chat.llm.transport import HttpTransport
from secure_chat.logging_utils import ChatErrorHandler, log_operation

PROMPT = "> "
EXIT_COMMANDS = {"/exit", "/quit"}


def print_fragment(fragment: str) -> None:
    """Write one reply fragment without buffering."""
    sys.stdout.write(fragment)
    sys.stdout.flush()


async def read_line(prompt: str) -> str:
    """Read a line from stdin without blocking the event loop.

    A daemon thread is used so a pending read never delays shutdown.

    Raises:
        EOFError: stdin was closed.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def resolve(line: str | None, error: Exception | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(line or "")

    def worker() -> None:
        try:
            line = input(prompt)
        except Exception as e:  # EOFError, OSError on a closed stdin
            loop.call_soon_threadsafe(resolve, None, e)
        else:
            loop.call_soon_threadsafe(resolve, line, None)

    threading.Thread(target=worker, name="stdin-reader", daemon=True).start()
    return await future


@log_operation("chat_turn")
async def chat_turn(client: ChatClient, text: str) -> str | None:
    """Send one message and print the reply as it arrives."""
    reply = await client.send_message(text, print_fragment)
    if reply is not None:
        print()
    return reply


async def run_turn(client: ChatClient, text: str) -> bool:
    """Run one turn, rendering failures. Returns False if the turn failed."""
    try:
        await chat_turn(client, text)
    except Exception as e:
        # Any failure, ChatError or not, ends as one error line
        ChatErrorHandler.log_error(e, "chat_turn", {"model": client.model})
        print(ChatErrorHandler.describe_error(e))
        return False
    return True


async def run_once(client: ChatClient, text: str) -> int:
    """Answer a single prompt; the exit status reflects success."""
    return 0 if await run_turn(client, text) else 1


async def run_interactive(client: ChatClient) -> int:
    """Prompt until EOF or an exit command."""
    while True:
        try:
            text = await read_line(PROMPT)
        except EOFError:
            print()
            return 0

        if text.strip() in EXIT_COMMANDS:
            return 0
        if not text.strip():
            continue

        await run_turn(client, text)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point with graceful shutdown handling."""
    args = sys.argv[1:] if argv is None else argv
    config = Configuration()

    logging.basicConfig(
        level=config.get_logging_level(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    client_config = config.get_client_config()

    # Setup graceful shutdown handler
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        """Handle shutdown signals gracefully."""
        logging.info("Received shutdown signal, initiating graceful shutdown...")
        shutdown_event.set()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

    async with HttpTransport(
        client_config["base_url"],
        api_key=config.api_key,
        timeout=config.get_http_timeout(),
    ) as transport:
        client = ChatClient(
            transport,
            model=client_config["model"],
            completions_path=client_config["completions_path"],
            extra_headers=config.get_request_headers(),
        )

        prompt = " ".join(args).strip()
        session = run_once(client, prompt) if prompt else run_interactive(client)
        session_task = asyncio.create_task(session)

        done, pending = await asyncio.wait(
            [session_task, asyncio.create_task(shutdown_event.wait())],
            return_when=asyncio.FIRST_COMPLETED,
        )

        # Cancelling the session abandons any reply still streaming
        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if session_task in done:
            return session_task.result()

        print()
        logging.info("Session interrupted")
        return 130


def cli() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
