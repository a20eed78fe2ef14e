from __future__ import annotations

import argparse
from typing import Sequence

from geocoin.content.io import JsonFileStore
from geocoin.sim.session import GameSession, MoveDirection

DEFAULT_SAVE_PATH = "saves/geocoin_save.json"
ASCII_RADIUS = 4
HELP_TEXT = (
    "Commands: show | move <up|down|left|right> | withdraw <i> <j> | deposit <i> <j> | "
    "inventory | caches | reset | quit"
)


def _cache_glyph(coin_count: int) -> str:
    if coin_count == 0:
        return "o"
    if coin_count < 10:
        return str(coin_count)
    return "+"


class AsciiViewer:
    """Read-only projection of session state for terminal display."""

    def __init__(self, radius: int = ASCII_RADIUS) -> None:
        self.radius = radius

    def render(self, session: GameSession) -> str:
        location = session.player.get_location()
        origin = session.current_cell
        lines = [
            f"cell={origin.key} lat={location.lat:.6f} lng={location.lng:.6f} | {session.status_text()}",
        ]
        counts = {cell: cache.coin_count() for cell, cache in session.visible_caches()}
        # North is up: highest i first.
        for i in range(origin.i + self.radius, origin.i - self.radius - 1, -1):
            row: list[str] = []
            for j in range(origin.j - self.radius, origin.j + self.radius + 1):
                cell = session.board.canonical_cell(i, j)
                if cell is origin:
                    row.append("@")
                elif cell in counts:
                    row.append(_cache_glyph(counts[cell]))
                else:
                    row.append(".")
            lines.append(" ".join(row))
        return "\n".join(lines)

    def render_caches(self, session: GameSession) -> str:
        caches = session.visible_caches()
        if not caches:
            return "<no caches nearby>"
        return "\n".join(f"cache {cell.key}: {cache.coin_count()} coins" for cell, cache in caches)

    def render_inventory(self, session: GameSession) -> str:
        inventory = session.player.get_inventory()
        if not inventory:
            return "<empty inventory>"
        lines = []
        for coin in inventory:
            home = session.coin_home(coin)
            lines.append(f"{coin.label} home=({home.lat:.6f},{home.lng:.6f})")
        return "\n".join(lines)


def execute_command(session: GameSession, view: AsciiViewer, raw: str) -> str:
    parts = raw.strip().split()
    if not parts:
        return ""
    if parts == ["show"]:
        return view.render(session)
    if parts == ["inventory"]:
        return view.render_inventory(session)
    if parts == ["caches"]:
        return view.render_caches(session)
    if parts == ["reset"]:
        session.reset()
        return view.render(session)
    if len(parts) == 2 and parts[0] == "move":
        try:
            session.move(MoveDirection(parts[1]))
        except ValueError:
            return f"unknown direction: {parts[1]}"
        return view.render(session)
    if len(parts) == 3 and parts[0] in {"withdraw", "deposit"}:
        try:
            cell = session.board.canonical_cell(int(parts[1]), int(parts[2]))
        except ValueError:
            return "cell coordinates must be integers"
        if parts[0] == "withdraw":
            coin = session.withdraw(cell)
            return f"withdrew {coin.label}" if coin is not None else "nothing to withdraw"
        coin = session.deposit(cell)
        return f"deposited {coin.label}" if coin is not None else "nothing to deposit"
    return "unknown command"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m geocoin.cli.viewer", description="Geocoin terminal viewer.")
    parser.add_argument("--save-path", default=DEFAULT_SAVE_PATH, help="Save file used for session state.")
    return parser


def run_demo(save_path: str = DEFAULT_SAVE_PATH) -> None:
    session = GameSession.start(JsonFileStore(save_path))
    view = AsciiViewer()

    print(f"Geocoin demo. {HELP_TEXT}")
    print(view.render(session))

    while True:
        raw = input("> ").strip()
        if raw in {"quit", "exit"}:
            break
        output = execute_command(session, view, raw)
        if output:
            print(output)
    session.save()


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    run_demo(args.save_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
