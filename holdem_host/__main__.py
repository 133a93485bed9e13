import argparse
import asyncio
import logging

from holdem.models import TableConfig

from .server import HostServer

logging.basicConfig(level=logging.INFO)


def main() -> None:
    parser = argparse.ArgumentParser(description="Texas Hold'em room host")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--small-blind", type=int, default=10)
    parser.add_argument("--big-blind", type=int, default=20)
    parser.add_argument("--starting-stack", type=int, default=1_000)
    parser.add_argument("--max-players", type=int, default=9)
    parser.add_argument(
        "--move-time",
        type=int,
        default=30_000,
        help="Move time in milliseconds before the acting seat is folded (0 disables)",
    )
    parser.add_argument("--next-hand-delay", type=int, default=5_000, help="Pause between hands in milliseconds")
    parser.add_argument("--reveal-folded", action="store_true", help="Show folded hole cards once a hand ends")
    parser.add_argument("--max-rooms", type=int, default=100)
    args = parser.parse_args()

    config = TableConfig(
        small_blind=args.small_blind,
        big_blind=args.big_blind,
        max_players=args.max_players,
        starting_stack=args.starting_stack,
        reveal_folded_hands=args.reveal_folded,
        move_time_ms=args.move_time,
        next_hand_delay_ms=args.next_hand_delay,
    )

    server = HostServer(config, max_rooms=args.max_rooms)
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
