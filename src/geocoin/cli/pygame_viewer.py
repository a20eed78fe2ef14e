from __future__ import annotations

import argparse
import importlib.metadata
import os
import platform
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from geocoin.content.io import JsonFileStore
from geocoin.sim.geolocation import GeolocationProvider, ScriptedGeolocationProvider
from geocoin.sim.hash import session_hash
from geocoin.sim.location import Cell, LatLng
from geocoin.sim.player import PlayerEvent
from geocoin.sim.session import GameSession, GameSettings, MoveDirection

CELL_PIXELS = 28
WINDOW_SIZE = (1200, 860)
STATUS_BAR_HEIGHT = 56
CONTROL_BAR_HEIGHT = 40
INVENTORY_PANEL_WIDTH = 360
FRAME_RATE = 60
INVENTORY_PANEL_ROWS = 9
DEFAULT_SAVE_PATH = "saves/session_save.json"

BACKGROUND_COLOR = (17, 18, 25)
GRID_COLOR = (42, 44, 56)
CACHE_COLOR = (232, 190, 72)
EMPTY_CACHE_COLOR = (120, 104, 62)
PLAYER_COLOR = (255, 243, 130)
TRAIL_COLOR = (88, 160, 255)
TEXT_COLOR = (240, 240, 240)
PANEL_COLOR = (28, 30, 40)

pygame: Any | None = None

KEY_DIRECTIONS: dict[str, MoveDirection] = {
    "up": MoveDirection.UP,
    "w": MoveDirection.UP,
    "down": MoveDirection.DOWN,
    "s": MoveDirection.DOWN,
    "left": MoveDirection.LEFT,
    "a": MoveDirection.LEFT,
    "right": MoveDirection.RIGHT,
    "d": MoveDirection.RIGHT,
}


@dataclass
class ViewerState:
    camera: LatLng
    show_inventory: bool = False
    reset_pending: bool = False
    status_message: str | None = None
    hovered_cell: Cell | None = None
    inventory_offset: int = 0


@dataclass(frozen=True)
class ViewportGeometry:
    width: int
    height: int
    cell_pixels: int = CELL_PIXELS

    @property
    def center(self) -> tuple[float, float]:
        return (self.width / 2.0, CONTROL_BAR_HEIGHT + self.height / 2.0)


def latlng_to_pixel(
    point: LatLng,
    camera: LatLng,
    tile_width: float,
    geometry: ViewportGeometry,
) -> tuple[float, float]:
    center_x, center_y = geometry.center
    x = center_x + (point.lng - camera.lng) / tile_width * geometry.cell_pixels
    y = center_y - (point.lat - camera.lat) / tile_width * geometry.cell_pixels
    return (x, y)


def pixel_to_latlng(
    pixel: tuple[float, float],
    camera: LatLng,
    tile_width: float,
    geometry: ViewportGeometry,
) -> LatLng:
    center_x, center_y = geometry.center
    lng = camera.lng + (pixel[0] - center_x) / geometry.cell_pixels * tile_width
    lat = camera.lat - (pixel[1] - center_y) / geometry.cell_pixels * tile_width
    return LatLng(lat=lat, lng=lng)


def cell_at_pixel(session: GameSession, camera: LatLng, pixel: tuple[float, float], geometry: ViewportGeometry) -> Cell:
    return session.board.get_cell_for_point(pixel_to_latlng(pixel, camera, session.board.tile_width, geometry))


def apply_key(session: GameSession, state: ViewerState, key_name: str) -> None:
    """Route one key press to the session; kept free of pygame so it can be exercised headless."""
    if key_name != "r" and state.reset_pending:
        state.reset_pending = False
        state.status_message = "reset cancelled"
    direction = KEY_DIRECTIONS.get(key_name)
    if direction is not None:
        if session.geolocation.enabled:
            state.status_message = "movement keys disabled while geolocation is on"
            return
        session.move(direction)
        return
    if key_name == "g":
        enabled = session.toggle_geolocation()
        state.status_message = f"geolocation {'on' if enabled else 'off'}"
    elif key_name == "i":
        state.show_inventory = not state.show_inventory
        state.inventory_offset = 0
    elif key_name == "c":
        state.camera = session.player.get_location()
    elif key_name == "r":
        if state.reset_pending:
            session.reset()
            session.player.subscribe(PlayerEvent.LOCATION_CHANGED, lambda player: _follow_player(state, player))
            state.camera = session.player.get_location()
            state.reset_pending = False
            state.status_message = "game reset"
        else:
            state.reset_pending = True
            state.status_message = "press R again to reset your game"
    elif state.show_inventory and key_name.isdigit() and key_name != "0":
        index = state.inventory_offset + int(key_name) - 1
        inventory = session.player.get_inventory()
        if index < len(inventory):
            coin = inventory[index]
            state.camera = session.coin_home(coin)
            state.show_inventory = False
            state.status_message = f"showing home of {coin.label}"


def apply_click(session: GameSession, state: ViewerState, cell: Cell, button: int) -> None:
    cache = session.cache_at(cell)
    if cache is None:
        state.status_message = f"no cache at {cell.key}"
        return
    if button == 1:
        coin = session.withdraw(cell)
        state.status_message = f"withdrew {coin.label}" if coin is not None else f"cache {cell.key} is empty"
    elif button == 3:
        coin = session.deposit(cell)
        state.status_message = f"deposited {coin.label}" if coin is not None else "no coins to deposit"


def _follow_player(state: ViewerState, player: Any) -> None:
    state.camera = player.get_location()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m geocoin.cli.pygame_viewer",
        description="Run the Geocoin pygame viewer.",
    )
    parser.add_argument(
        "--save-path",
        default=DEFAULT_SAVE_PATH,
        help="Save file holding the board, player and moveHistory blobs.",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver for CI/testing and exit without opening a real window.",
    )
    parser.add_argument(
        "--geolocation-script",
        help="Optional file of 'lat,lng' lines replayed as device positions when geolocation is on.",
    )
    parser.add_argument(
        "--tile-radius",
        type=int,
        default=None,
        help="Visibility radius in cells for new games.",
    )
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[geocoin.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )
    for name in ("SDL_VIDEODRIVER", "SDL_AUDIODRIVER"):
        value = os.environ.get(name, "<unset>")
        print(f"[geocoin.viewer] env {name}={value}")


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def _build_settings(tile_radius: int | None) -> GameSettings:
    settings = GameSettings()
    if tile_radius is not None:
        settings = replace(settings, tile_visibility_radius=tile_radius)
    return settings


def _load_geolocation_provider(script_path: str | None) -> GeolocationProvider | None:
    if not script_path:
        return None
    return ScriptedGeolocationProvider.from_text(Path(script_path).read_text(encoding="utf-8"))


def _load_viewer_session(
    save_path: str,
    *,
    geolocation_script: str | None = None,
    tile_radius: int | None = None,
) -> GameSession:
    session = GameSession.start(
        JsonFileStore(save_path),
        _build_settings(tile_radius),
        geolocation_provider=_load_geolocation_provider(geolocation_script),
    )
    print(
        "[geocoin.viewer] loaded "
        f"path={save_path} cell={session.current_cell.key} "
        f"known_cells={len(session.board.registry)} "
        f"coins={session.player.get_coin_count()} "
        f"session_hash={session_hash(session.board, session.player, session.move_history)}"
    )
    return session


def _save_viewer_session(session: GameSession, save_path: str) -> None:
    session.save()
    print(
        "[geocoin.viewer] saved "
        f"path={save_path} "
        f"session_hash={session_hash(session.board, session.player, session.move_history)}"
    )


def _draw_board(screen: Any, session: GameSession, state: ViewerState, font: Any, geometry: ViewportGeometry) -> None:
    tile_width = session.board.tile_width
    for cell in session.cells_near_player():
        bounds = session.board.get_cell_bounds(cell)
        left, top = latlng_to_pixel(LatLng(bounds.north, bounds.west), state.camera, tile_width, geometry)
        rect = pygame.Rect(int(left), int(top), geometry.cell_pixels, geometry.cell_pixels)
        pygame.draw.rect(screen, GRID_COLOR, rect, 1)

    for cell, cache in session.visible_caches():
        bounds = session.board.get_cell_bounds(cell)
        left, top = latlng_to_pixel(LatLng(bounds.north, bounds.west), state.camera, tile_width, geometry)
        rect = pygame.Rect(int(left) + 2, int(top) + 2, geometry.cell_pixels - 4, geometry.cell_pixels - 4)
        color = CACHE_COLOR if cache.coin_count() else EMPTY_CACHE_COLOR
        pygame.draw.rect(screen, color, rect)
        label = font.render(str(cache.coin_count()), True, BACKGROUND_COLOR)
        screen.blit(label, label.get_rect(center=rect.center))

    if len(session.move_history) > 1:
        points = [latlng_to_pixel(point, state.camera, tile_width, geometry) for point in session.move_history]
        pygame.draw.lines(screen, TRAIL_COLOR, False, points, 2)

    player_x, player_y = latlng_to_pixel(session.player.get_location(), state.camera, tile_width, geometry)
    pygame.draw.circle(screen, PLAYER_COLOR, (int(player_x), int(player_y)), 8)
    pygame.draw.circle(screen, BACKGROUND_COLOR, (int(player_x), int(player_y)), 8, 1)


def _draw_hud(screen: Any, session: GameSession, state: ViewerState, font: Any) -> None:
    geo_text = "geo=on" if session.geolocation.enabled else "geo=off"
    controls = "WASD/arrows move | LMB withdraw | RMB deposit | I inventory | G geolocation | R reset | ESC quit"
    screen.blit(font.render(f"{controls}   [{geo_text}]", True, TEXT_COLOR), (12, 10))

    status_top = WINDOW_SIZE[1] - STATUS_BAR_HEIGHT
    pygame.draw.rect(screen, PANEL_COLOR, pygame.Rect(0, status_top, WINDOW_SIZE[0], STATUS_BAR_HEIGHT))
    lines = [session.status_text()]
    if state.hovered_cell is not None:
        lines[0] += f" | cell {state.hovered_cell.key}"
    if state.status_message:
        lines.append(state.status_message)
    y = status_top + 6
    for line in lines:
        screen.blit(font.render(line, True, TEXT_COLOR), (12, y))
        y += 22


def _draw_inventory(screen: Any, session: GameSession, state: ViewerState, font: Any) -> None:
    if not state.show_inventory:
        return
    panel = pygame.Rect(
        WINDOW_SIZE[0] - INVENTORY_PANEL_WIDTH - 12,
        CONTROL_BAR_HEIGHT + 12,
        INVENTORY_PANEL_WIDTH,
        24 * (INVENTORY_PANEL_ROWS + 2),
    )
    pygame.draw.rect(screen, PANEL_COLOR, panel)
    pygame.draw.rect(screen, GRID_COLOR, panel, 1)
    inventory = session.player.get_inventory()
    rows = [f"Inventory ({len(inventory)})"]
    visible = inventory[state.inventory_offset : state.inventory_offset + INVENTORY_PANEL_ROWS]
    rows.extend(f"{index + 1}. {coin.label}" for index, coin in enumerate(visible))
    if not inventory:
        rows.append("<empty>")
    y = panel.y + 8
    for row in rows:
        screen.blit(font.render(row, True, TEXT_COLOR), (panel.x + 10, y))
        y += 24


def _key_name(event_key: int) -> str:
    return pygame.key.name(event_key).lower()


def run_pygame_viewer(
    *,
    save_path: str = DEFAULT_SAVE_PATH,
    headless: bool = False,
    geolocation_script: str | None = None,
    tile_radius: int | None = None,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[geocoin.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(
            "[geocoin.viewer] failed during pygame.init(): "
            f"{exc}. Hint: verify a working SDL video driver (set SDL_VIDEODRIVER=dummy for headless mode).",
            file=sys.stderr,
        )
        return 1

    try:
        session = _load_viewer_session(save_path, geolocation_script=geolocation_script, tile_radius=tile_radius)
    except (OSError, ValueError) as exc:
        print(f"[geocoin.viewer] failed to initialize session: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    try:
        pygame_module.display.set_caption("Geocoin")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            "[geocoin.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: GUI sessions require a valid display; use --headless or GEOCOIN_HEADLESS=1.",
            file=sys.stderr,
        )
        pygame_module.quit()
        return 1

    print(f"[geocoin.viewer] display initialized: {pygame_module.display.get_driver()}, window size={WINDOW_SIZE}")

    if headless:
        session.poll_geolocation(pygame_module.time.get_ticks())
        _save_viewer_session(session, save_path)
        pygame_module.quit()
        return 0

    state = ViewerState(camera=session.player.get_location())
    session.player.subscribe(PlayerEvent.LOCATION_CHANGED, lambda player: _follow_player(state, player))
    geometry = ViewportGeometry(width=WINDOW_SIZE[0], height=WINDOW_SIZE[1] - STATUS_BAR_HEIGHT - CONTROL_BAR_HEIGHT)
    clock = pygame_module.time.Clock()
    font = pygame_module.font.SysFont("consolas", 16)
    cell_font = pygame_module.font.SysFont("consolas", 12)

    running = True
    while running:
        clock.tick(FRAME_RATE)
        session.poll_geolocation(pygame_module.time.get_ticks())

        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type == pygame_module.KEYDOWN and event.key == pygame_module.K_ESCAPE:
                running = False
            elif event.type == pygame_module.KEYDOWN:
                apply_key(session, state, _key_name(event.key))
            elif event.type == pygame_module.MOUSEMOTION:
                state.hovered_cell = cell_at_pixel(session, state.camera, event.pos, geometry)
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button in (1, 3):
                if CONTROL_BAR_HEIGHT <= event.pos[1] < WINDOW_SIZE[1] - STATUS_BAR_HEIGHT:
                    apply_click(session, state, cell_at_pixel(session, state.camera, event.pos, geometry), event.button)
            elif event.type == pygame_module.MOUSEBUTTONDOWN and event.button in (4, 5) and state.show_inventory:
                delta = -1 if event.button == 4 else 1
                limit = max(0, session.player.get_coin_count() - INVENTORY_PANEL_ROWS)
                state.inventory_offset = max(0, min(limit, state.inventory_offset + delta))

        screen.fill(BACKGROUND_COLOR)
        _draw_board(screen, session, state, cell_font, geometry)
        _draw_hud(screen, session, state, font)
        _draw_inventory(screen, session, state, font)
        pygame_module.display.flip()

    _save_viewer_session(session, save_path)
    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    headless = args.headless or _env_flag_enabled("GEOCOIN_HEADLESS")
    raise SystemExit(
        run_pygame_viewer(
            save_path=args.save_path,
            headless=headless,
            geolocation_script=args.geolocation_script,
            tile_radius=args.tile_radius,
        )
    )


if __name__ == "__main__":
    main()
