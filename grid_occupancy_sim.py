# -*- coding: utf-8 -*-
from __future__ import annotations

import sys
import time
import traceback
import unittest
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import (
    Any,
    Callable,
    ClassVar,
    Final,
    Literal,
    Protocol,
    TypeAlias,
    Tuple,
    runtime_checkable,
)

try:
    from PIL import Image, ImageDraw
    import numpy as np
    import numpy.typing as npt
    import matplotlib.figure
    import matplotlib.pyplot as plt
    import scipy.stats as stats
except ImportError as import_error:
    print(
        f"Error: Missing dependencies -> {import_error}. "
        "Please run: pip install Pillow numpy matplotlib scipy"
    )
    sys.exit(1)


Coordinate: TypeAlias = Tuple[int, int]
Color: TypeAlias = Tuple[int, int, int]
NDArrayF64: TypeAlias = npt.NDArray[np.float64]
NDArrayInt: TypeAlias = npt.NDArray[np.int64]
WalkPolicy: TypeAlias = Literal["rejection", "legal_only"]

GRID_COLUMNS: Final[int] = 3
GRID_ROWS: Final[int] = 2

# Row-major: zero one two on row 0, three four five on row 1.
POSITION_LABELS: Final[tuple[str, ...]] = (
    "zero",
    "one",
    "two",
    "three",
    "four",
    "five",
)
POSITION_COORDINATES: Final[tuple[Coordinate, ...]] = (
    (0, 0),
    (1, 0),
    (2, 0),
    (0, 1),
    (1, 1),
    (2, 1),
)
CORNER_POSITIONS: Final[tuple[Coordinate, ...]] = (
    (0, 0),
    (2, 0),
    (0, 1),
    (2, 1),
)
EDGE_CENTER_POSITIONS: Final[tuple[Coordinate, ...]] = ((1, 0), (1, 1))
_POSITION_INDEX: Final[dict[Coordinate, int]] = {
    coordinate: index for index, coordinate in enumerate(POSITION_COORDINATES)
}
_LABEL_INDEX: Final[dict[str, int]] = {
    label: index for index, label in enumerate(POSITION_LABELS)
}

PRECISION_TOLERANCE: Final[float] = 1e-9
DEFAULT_OUTPUT_DIR: Final[Path] = Path("./simulation_outputs").resolve()
KILO: Final[int] = 1000
REFERENCE_ITERATIONS: Final[int] = 100 * KILO * KILO
DEFAULT_SEED_FUNC: Callable[[], int] = lambda: int(
    np.random.SeedSequence().entropy
)


class SimulationError(Exception):
    pass


class VisualizationError(Exception):
    pass


class ConfigError(ValueError):
    pass


class UsageError(ValueError):
    pass


class IllegalMoveError(SimulationError):
    def __init__(self, current: Coordinate, attempted: Coordinate) -> None:
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Move not possible: ({current[0]}, {current[1]}) -> "
            f"({attempted[0]}, {attempted[1]})"
        )


class OccupancyInvariantError(SimulationError):
    pass


def _create_unique_filename(prefix: str, suffix: str) -> str:
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    unique_id = uuid.uuid4().hex[:6]
    return f"{prefix}_{timestamp}_{unique_id}.{suffix}"


def _ensure_output_dir(file_path: Path) -> Path | None:
    output_dir = file_path.parent
    try:
        resolved_path = file_path.resolve()
        output_dir = resolved_path.parent
        output_dir.mkdir(parents=True, exist_ok=True)
        return resolved_path
    except OSError as e:
        print(
            f"Warning: Directory access error for {output_dir}: {e}",
            file=sys.stderr,
        )
        return None


def _validate_positive_ints(*named_values: Tuple[str, Any]) -> None:
    for name, value in named_values:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigError(
                f"Configuration error: '{name}' must be a positive integer, got {value}."
            )


def _validate_floats_exclusive_0_1(*named_values: Tuple[str, Any]) -> None:
    for name, value in named_values:
        if not isinstance(value, float) or not (0.0 < value <= 1.0):
            raise ConfigError(
                f"Configuration error: '{name}' must be a float between 0.0 (exclusive) and 1.0 (inclusive), got {value}."
            )


def _validate_colors(*named_values: Tuple[str, Any]) -> None:
    for name, value in named_values:
        if (
            not isinstance(value, tuple)
            or len(value) != 3
            or not all(isinstance(c, int) and 0 <= c <= 255 for c in value)
        ):
            raise ConfigError(
                f"Configuration error: '{name}' must be an (R, G, B) tuple of integers in 0..255, got {value}."
            )


def _validate_grid_coordinate(x: Any, y: Any) -> None:
    if isinstance(x, bool) or not isinstance(x, int) or not 0 <= x < GRID_COLUMNS:
        raise ConfigError(
            f"Configuration error: start x must be an integer in 0..{GRID_COLUMNS - 1}, got {x}."
        )
    if isinstance(y, bool) or not isinstance(y, int) or not 0 <= y < GRID_ROWS:
        raise ConfigError(
            f"Configuration error: start y must be an integer in 0..{GRID_ROWS - 1}, got {y}."
        )


@dataclass(frozen=True)
class WalkConfig:
    START_X: int = 0
    START_Y: int = 0
    NUM_ITERATIONS: int = 1 * KILO * KILO
    POLICY: WalkPolicy = "rejection"
    MAX_RESAMPLE_ATTEMPTS: int = 1 * KILO
    RANDOM_BLOCK_SIZE: int = 4096
    SEED: int | None = field(default_factory=DEFAULT_SEED_FUNC)

    def __post_init__(self) -> None:
        _validate_grid_coordinate(self.START_X, self.START_Y)
        _validate_positive_ints(
            ("NUM_ITERATIONS", self.NUM_ITERATIONS),
            ("MAX_RESAMPLE_ATTEMPTS", self.MAX_RESAMPLE_ATTEMPTS),
            ("RANDOM_BLOCK_SIZE", self.RANDOM_BLOCK_SIZE),
        )
        valid_policies: set[WalkPolicy] = {"rejection", "legal_only"}
        if self.POLICY not in valid_policies:
            raise ConfigError(
                f"Invalid walk policy '{self.POLICY}'. Must be one of {sorted(valid_policies)}."
            )
        if self.SEED is not None and (
            not isinstance(self.SEED, int) or self.SEED < 0
        ):
            raise ConfigError(
                f"Configuration error: 'SEED' must be a non-negative integer or None, got {self.SEED}."
            )


@dataclass(frozen=True)
class VisConfig:
    FIGSIZE: tuple[int, int] = (12, 5)
    DPI: int = 150
    BAR_COLOR: str = "#4c72b0"
    BAR_ALPHA: float = 0.85
    GRID_ALPHA: float = 0.3
    HEATMAP_CMAP: str = "viridis"
    CELL_SIZE: int = 120
    CELL_MARGIN: int = 12
    OUTLINE_WIDTH: int = 4
    BACKGROUND_COLOR: Color = (40, 40, 80)
    LOW_COLOR: Color = (100, 100, 220)
    HIGH_COLOR: Color = (100, 220, 100)
    PARTICLE_COLOR: Color = (230, 200, 80)
    EMPTY_OUTLINE_COLOR: Color = (245, 245, 245)
    DEFAULT_OCCUPANCY_PLOT_FILENAME: Final[str] = field(
        default_factory=lambda: _create_unique_filename(
            "occupancy", "png"
        )
    )
    DEFAULT_BOARD_IMAGE_FILENAME: Final[str] = field(
        default_factory=lambda: _create_unique_filename(
            "grid_board", "png"
        )
    )

    def __post_init__(self) -> None:
        _validate_positive_ints(
            ("FIGSIZE width", self.FIGSIZE[0]),
            ("FIGSIZE height", self.FIGSIZE[1]),
            ("DPI", self.DPI),
            ("CELL_SIZE", self.CELL_SIZE),
            ("CELL_MARGIN", self.CELL_MARGIN),
            ("OUTLINE_WIDTH", self.OUTLINE_WIDTH),
        )
        _validate_floats_exclusive_0_1(
            ("BAR_ALPHA", self.BAR_ALPHA),
            ("GRID_ALPHA", self.GRID_ALPHA),
        )
        _validate_colors(
            ("BACKGROUND_COLOR", self.BACKGROUND_COLOR),
            ("LOW_COLOR", self.LOW_COLOR),
            ("HIGH_COLOR", self.HIGH_COLOR),
            ("PARTICLE_COLOR", self.PARTICLE_COLOR),
            ("EMPTY_OUTLINE_COLOR", self.EMPTY_OUTLINE_COLOR),
        )
        if 2 * self.OUTLINE_WIDTH >= self.CELL_SIZE:
            raise ConfigError(
                "OUTLINE_WIDTH must be less than half of CELL_SIZE."
            )


def _check_uniform(value: float) -> None:
    if not 0.0 <= value < 1.0:
        raise SimulationError(
            f"Uniform draw {value} lies outside the half-open interval [0, 1)."
        )


class Direction(Enum):
    UP = (0, -1)
    DOWN = (0, 1)
    LEFT = (-1, 0)
    RIGHT = (1, 0)

    @classmethod
    def from_uniform(cls, value: float) -> Direction:
        """Map a draw from [0, 1) onto up, down, left, right by quarters."""
        _check_uniform(value)
        if value < 0.25:
            return cls.UP
        if value < 0.5:
            return cls.DOWN
        if value < 0.75:
            return cls.LEFT
        return cls.RIGHT


class GridState:
    """Position of the single empty cell on the fixed 2x3 board.

    The empty cell is the focal point: moving it in one direction is the
    same as the neighbouring particle sliding in from that direction.
    With only two rows, up and down are row flips.
    """

    def __init__(self, start_x: int, start_y: int) -> None:
        _validate_grid_coordinate(start_x, start_y)
        self._empty_x = start_x
        self._empty_y = start_y

    @property
    def empty_x(self) -> int:
        return self._empty_x

    @property
    def empty_y(self) -> int:
        return self._empty_y

    def _illegal(self, dx: int, dy: int) -> IllegalMoveError:
        return IllegalMoveError(
            (self._empty_x, self._empty_y),
            (self._empty_x + dx, self._empty_y + dy),
        )

    def move_up(self) -> None:
        if self._empty_y == 0:
            raise self._illegal(0, -1)
        self._empty_y = 0

    def move_down(self) -> None:
        if self._empty_y == 1:
            raise self._illegal(0, 1)
        self._empty_y = 1

    def move_left(self) -> None:
        if self._empty_x == 0:
            raise self._illegal(-1, 0)
        self._empty_x -= 1

    def move_right(self) -> None:
        if self._empty_x == GRID_COLUMNS - 1:
            raise self._illegal(1, 0)
        self._empty_x += 1

    _MOVES: ClassVar[dict[Direction, Callable[[GridState], None]]] = {
        Direction.UP: move_up,
        Direction.DOWN: move_down,
        Direction.LEFT: move_left,
        Direction.RIGHT: move_right,
    }

    def move(self, direction: Direction) -> None:
        self._MOVES[direction](self)

    def is_legal(self, direction: Direction) -> bool:
        dx, dy = direction.value
        return (
            0 <= self._empty_x + dx < GRID_COLUMNS
            and 0 <= self._empty_y + dy < GRID_ROWS
        )

    def legal_directions(self) -> tuple[Direction, ...]:
        return tuple(d for d in Direction if self.is_legal(d))

    def current_position(self) -> Coordinate:
        return (self._empty_x, self._empty_y)

    def cells(self) -> npt.NDArray[np.bool_]:
        occupied = np.ones((GRID_ROWS, GRID_COLUMNS), dtype=bool)
        occupied[self._empty_y, self._empty_x] = False
        return occupied

    def __str__(self) -> str:
        rows = [
            "".join("[.]" if occupied else "[ ]" for occupied in row)
            for row in self.cells()
        ]
        rows.append(
            f"Empty spot position: ({self._empty_x}, {self._empty_y})"
        )
        return "\n".join(rows)

    def __repr__(self) -> str:
        return f"GridState(empty_x={self._empty_x}, empty_y={self._empty_y})"


@dataclass(frozen=True, eq=False)
class OccupancyPercentages:
    values: NDArrayF64

    def __post_init__(self) -> None:
        if self.values.shape != (len(POSITION_LABELS),):
            raise SimulationError(
                f"Occupancy percentages must have shape ({len(POSITION_LABELS)},), got {self.values.shape}."
            )

    def __getitem__(self, label: str) -> float:
        if label not in _LABEL_INDEX:
            raise KeyError(
                f"Unknown position label '{label}'. Valid labels: {POSITION_LABELS}"
            )
        return float(self.values[_LABEL_INDEX[label]])

    def at(self, position: Coordinate) -> float:
        return float(self.values[_POSITION_INDEX[position]])

    def as_dict(self) -> dict[str, float]:
        return {
            label: float(value)
            for label, value in zip(POSITION_LABELS, self.values)
        }

    def as_grid(self) -> NDArrayF64:
        return self.values.reshape(GRID_ROWS, GRID_COLUMNS)

    def lines(self) -> list[str]:
        return [
            f"In {label}: {float(value)}"
            for label, value in zip(POSITION_LABELS, self.values)
        ]

    def __str__(self) -> str:
        return "\n".join(self.lines())


@dataclass(eq=False)
class OccupancyTally:
    iterations: int = 0
    counts: NDArrayInt = field(
        default_factory=lambda: np.zeros(
            len(POSITION_LABELS), dtype=np.int64
        )
    )

    def record(self, position: Coordinate) -> None:
        index = _POSITION_INDEX.get(position)
        if index is None:
            raise OccupancyInvariantError(
                f"Empty cell reached {position}, which is not one of the six grid positions."
            )
        self.counts[index] += 1
        self.iterations += 1

    def count(self, label: str) -> int:
        if label not in _LABEL_INDEX:
            raise KeyError(
                f"Unknown position label '{label}'. Valid labels: {POSITION_LABELS}"
            )
        return int(self.counts[_LABEL_INDEX[label]])

    def check_invariant(self) -> None:
        total = int(self.counts.sum())
        if np.any(self.counts < 0) or total != self.iterations:
            raise OccupancyInvariantError(
                f"Tally counters {self.counts.tolist()} do not sum to the {self.iterations} recorded iterations."
            )

    def merge(self, other: OccupancyTally) -> OccupancyTally:
        merged = OccupancyTally(
            iterations=self.iterations + other.iterations,
            counts=self.counts + other.counts,
        )
        merged.check_invariant()
        return merged

    def to_percentages(self) -> OccupancyPercentages:
        if self.iterations <= 0:
            raise SimulationError(
                "Occupancy percentages are undefined for a tally with zero iterations."
            )
        self.check_invariant()
        return OccupancyPercentages(
            self.counts.astype(np.float64) / self.iterations
        )


@runtime_checkable
class UniformSource(Protocol):
    def random(self, size: int) -> NDArrayF64:
        ...


class _UniformStream:
    def __init__(self, source: UniformSource, block_size: int) -> None:
        self._source = source
        self._block_size = block_size
        self._buffer: list[float] = []
        self._index = 0

    def next(self) -> float:
        if self._index >= len(self._buffer):
            self._buffer = np.asarray(
                self._source.random(self._block_size), dtype=np.float64
            ).ravel().tolist()
            self._index = 0
            if not self._buffer:
                raise SimulationError("Random source returned no values.")
        value = self._buffer[self._index]
        self._index += 1
        return value


class OccupancySimulator:
    def __init__(
        self, config: WalkConfig, rng: UniformSource | None = None
    ) -> None:
        if rng is not None and not isinstance(rng, UniformSource):
            raise ConfigError(
                f"Random source {type(rng).__name__} does not provide random(size)."
            )
        self.config = config
        self._rng: UniformSource = (
            rng if rng is not None else np.random.default_rng(config.SEED)
        )
        self.last_state: GridState | None = None

    def run(
        self, start_x: int, start_y: int, n: int
    ) -> OccupancyPercentages:
        return self.run_tally(start_x, start_y, n).to_percentages()

    def run_tally(self, start_x: int, start_y: int, n: int) -> OccupancyTally:
        _validate_positive_ints(("n", n))
        state = GridState(start_x, start_y)
        tally = OccupancyTally()
        stream = _UniformStream(self._rng, self.config.RANDOM_BLOCK_SIZE)
        advance = (
            self._advance_by_rejection
            if self.config.POLICY == "rejection"
            else self._advance_among_legal
        )

        try:
            for _ in range(n):
                advance(state, stream)
                tally.record(state.current_position())
        except SimulationError:
            raise
        except Exception as e:
            raise SimulationError(
                f"Occupancy simulation failed unexpectedly: {e}"
            ) from e

        if tally.iterations != n:
            raise OccupancyInvariantError(
                f"Simulation recorded {tally.iterations} iterations, expected {n}."
            )
        tally.check_invariant()
        self.last_state = state
        return tally

    def _advance_by_rejection(
        self, state: GridState, stream: _UniformStream
    ) -> None:
        max_attempts = self.config.MAX_RESAMPLE_ATTEMPTS
        for _ in range(max_attempts):
            direction = Direction.from_uniform(stream.next())
            try:
                state.move(direction)
                return
            except IllegalMoveError:
                continue
        raise OccupancyInvariantError(
            f"No legal move accepted from {state.current_position()} after {max_attempts} attempts."
        )

    def _advance_among_legal(
        self, state: GridState, stream: _UniformStream
    ) -> None:
        legal = state.legal_directions()
        if not legal:
            raise OccupancyInvariantError(
                f"No legal directions available from {state.current_position()}."
            )
        value = stream.next()
        _check_uniform(value)
        index = min(int(value * len(legal)), len(legal) - 1)
        state.move(legal[index])


@dataclass(frozen=True)
class SymmetryReport:
    """Equal-frequency checks within the corner and edge-centre groups.

    Successive positions of the walk are correlated, so the chi-square
    p-values are indicative rather than exact.
    """

    corner_statistic: float
    corner_pvalue: float
    corner_spread: float
    edge_statistic: float
    edge_pvalue: float
    edge_spread: float

    def lines(self) -> list[str]:
        return [
            f"Corners {CORNER_POSITIONS}: chi2={self.corner_statistic:.4f}, "
            f"p={self.corner_pvalue:.4f}, relative spread={self.corner_spread:.4%}",
            f"Edge centres {EDGE_CENTER_POSITIONS}: chi2={self.edge_statistic:.4f}, "
            f"p={self.edge_pvalue:.4f}, relative spread={self.edge_spread:.4%}",
        ]


def _group_equality(counts: NDArrayInt) -> Tuple[float, float, float]:
    total = int(counts.sum())
    if total == 0:
        return float("nan"), float("nan"), 0.0
    result = stats.chisquare(counts)
    mean = total / counts.size
    spread = float((counts.max() - counts.min()) / mean)
    return float(result.statistic), float(result.pvalue), spread


def symmetry_report(tally: OccupancyTally) -> SymmetryReport:
    corner_counts = np.array(
        [tally.counts[_POSITION_INDEX[p]] for p in CORNER_POSITIONS]
    )
    edge_counts = np.array(
        [tally.counts[_POSITION_INDEX[p]] for p in EDGE_CENTER_POSITIONS]
    )
    corner_stat, corner_p, corner_spread = _group_equality(corner_counts)
    edge_stat, edge_p, edge_spread = _group_equality(edge_counts)
    return SymmetryReport(
        corner_statistic=corner_stat,
        corner_pvalue=corner_p,
        corner_spread=corner_spread,
        edge_statistic=edge_stat,
        edge_pvalue=edge_p,
        edge_spread=edge_spread,
    )


def _blend_color(low: Color, high: Color, weight: float) -> Color:
    weight = min(max(weight, 0.0), 1.0)
    r, g, b = (
        int(round(lo + (hi - lo) * weight)) for lo, hi in zip(low, high)
    )
    return (r, g, b)


def render_board_image(
    state: GridState,
    percentages: OccupancyPercentages | None = None,
    config: VisConfig | None = None,
) -> Image.Image:
    cfg = config or VisConfig()
    cell = cfg.CELL_SIZE
    margin = cfg.CELL_MARGIN
    width = GRID_COLUMNS * cell + (GRID_COLUMNS + 1) * margin
    height = GRID_ROWS * cell + (GRID_ROWS + 1) * margin

    try:
        image = Image.new("RGB", (width, height), cfg.BACKGROUND_COLOR)
        draw = ImageDraw.Draw(image)

        max_value = (
            float(percentages.values.max()) if percentages is not None else 0.0
        )
        empty_position = state.current_position()

        for x, y in POSITION_COORDINATES:
            x0 = margin + x * (cell + margin)
            y0 = margin + y * (cell + margin)
            x1 = x0 + cell
            y1 = y0 + cell

            weight = (
                percentages.at((x, y)) / max_value
                if percentages is not None and max_value > 0
                else 0.0
            )
            draw.rectangle(
                (x0, y0, x1, y1),
                fill=_blend_color(cfg.LOW_COLOR, cfg.HIGH_COLOR, weight),
            )

            if (x, y) == empty_position:
                draw.rectangle(
                    (x0, y0, x1, y1),
                    outline=cfg.EMPTY_OUTLINE_COLOR,
                    width=cfg.OUTLINE_WIDTH,
                )
            else:
                inset = cell // 4
                draw.ellipse(
                    (x0 + inset, y0 + inset, x1 - inset, y1 - inset),
                    fill=cfg.PARTICLE_COLOR,
                )
    except Exception as e:
        raise VisualizationError(f"Failed to draw board image: {e}") from e

    return image


def save_board_image(image: Image.Image, filename: str | Path) -> str:
    output_path = Path(filename)
    resolved_path = _ensure_output_dir(output_path)
    if resolved_path is None:
        raise IOError(
            f"Invalid output path or directory creation failed for '{output_path}'. Image not saved."
        )
    try:
        image.save(resolved_path)
        return str(resolved_path)
    except (OSError, ValueError) as e:
        raise IOError(
            f"Failed to save board image to '{resolved_path}': {e}"
        ) from e


class Visualizer:
    def __init__(self, config: VisConfig) -> None:
        self.config = config

    def _save_or_show(
        self,
        fig: matplotlib.figure.Figure,
        show_plot: bool,
        save_path: Path | None,
    ) -> None:
        try:
            target_path = _ensure_output_dir(save_path) if save_path else None
            if save_path and target_path is None:
                raise VisualizationError(
                    f"Output directory for {save_path} is not writable."
                )
            if target_path:
                fig.savefig(target_path, dpi=self.config.DPI, bbox_inches="tight")
            if show_plot:
                plt.show()
        finally:
            plt.close(fig)

    def plot_occupancy(
        self,
        percentages: OccupancyPercentages,
        show_plot: bool = True,
        save_path: Path | None = None,
    ) -> None:
        cfg = self.config
        fig: matplotlib.figure.Figure | None = None
        try:
            fig, (bar_ax, grid_ax) = plt.subplots(1, 2, figsize=cfg.FIGSIZE)

            bar_ax.bar(
                POSITION_LABELS,
                percentages.values,
                color=cfg.BAR_COLOR,
                alpha=cfg.BAR_ALPHA,
            )
            bar_ax.axhline(
                1.0 / len(POSITION_LABELS),
                color="grey",
                linestyle="--",
                linewidth=1.0,
                label="Uniform",
            )
            bar_ax.set_title("Empty Cell Occupancy", fontsize=14)
            bar_ax.set_xlabel("Position")
            bar_ax.set_ylabel("Relative Frequency")
            bar_ax.grid(True, axis="y", alpha=cfg.GRID_ALPHA, linestyle=":")
            bar_ax.legend()

            grid = percentages.as_grid()
            image = grid_ax.imshow(grid, cmap=cfg.HEATMAP_CMAP)
            for (x, y), label in zip(POSITION_COORDINATES, POSITION_LABELS):
                grid_ax.text(
                    x,
                    y,
                    f"{label}\n{grid[y, x]:.4f}",
                    ha="center",
                    va="center",
                    color="white",
                )
            grid_ax.set_xticks(range(GRID_COLUMNS))
            grid_ax.set_yticks(range(GRID_ROWS))
            grid_ax.set_title("Occupancy by Cell", fontsize=14)
            fig.colorbar(image, ax=grid_ax, shrink=0.8)

            fig.tight_layout()
            self._save_or_show(fig, show_plot, save_path)
            fig = None

        except Exception as e:
            if fig:
                plt.close(fig)
            raise VisualizationError(
                f"Failed to plot occupancy: {e}"
            ) from e


def simulate(
    start_x: int, start_y: int, n: int, seed: int | None = None
) -> OccupancyPercentages:
    config = WalkConfig(
        START_X=start_x, START_Y=start_y, NUM_ITERATIONS=n, SEED=seed
    )
    percentages = OccupancySimulator(config).run(start_x, start_y, n)
    print(percentages)
    return percentages


class SimulationRunner:
    def __init__(
        self,
        walk_config: WalkConfig | None = None,
        vis_config: VisConfig | None = None,
    ) -> None:
        try:
            self.w_cfg = walk_config or WalkConfig()
            self.v_cfg = vis_config or VisConfig()
        except ConfigError as e:
            raise ConfigError(
                f"Configuration initialization failed: {e}"
            ) from e

        self.simulator = OccupancySimulator(self.w_cfg)
        self.visualizer = Visualizer(self.v_cfg)
        self.tally: OccupancyTally | None = None
        self.percentages: OccupancyPercentages | None = None

    def _run_task(
        self,
        task_name: str,
        task_func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> bool:
        print(f"\n--- Running {task_name} ---")
        start_time = time.monotonic()
        success = False
        try:
            task_func(*args, **kwargs)
            success = True
        except (
            SimulationError,
            VisualizationError,
            ConfigError,
            IOError,
        ) as e:
            print(
                f"ERROR during {task_name}: {type(e).__name__}: {e}",
                file=sys.stderr,
            )
        except Exception as e:
            print(
                f"UNEXPECTED ERROR during {task_name}: {type(e).__name__}: {e}",
                file=sys.stderr,
            )
            traceback.print_exc(file=sys.stderr)
        finally:
            elapsed_time = time.monotonic() - start_time
            status = "OK" if success else "FAILED"
            print(
                f"--- {task_name} {status} (Duration: {elapsed_time:.2f}s) ---"
            )
        return success

    def run_occupancy_simulation(self) -> bool:
        def task():
            cfg = self.w_cfg
            print(
                f"Simulating {cfg.NUM_ITERATIONS:,} accepted moves from "
                f"({cfg.START_X}, {cfg.START_Y}) (policy: {cfg.POLICY}, seed: {cfg.SEED})..."
            )
            self.tally = self.simulator.run_tally(
                cfg.START_X, cfg.START_Y, cfg.NUM_ITERATIONS
            )
            self.percentages = self.tally.to_percentages()
            print(self.percentages)
            if self.simulator.last_state is not None:
                print(f"\nFinal board:\n{self.simulator.last_state}")
            self._display_results_table(self.tally, self.percentages)

        return self._run_task("Occupancy Simulation", task)

    def run_symmetry_check(self) -> bool:
        def task():
            if self.tally is None:
                raise SimulationError(
                    "No tally available. Run the occupancy simulation first."
                )
            report = symmetry_report(self.tally)
            for line in report.lines():
                print(line)

        return self._run_task("Symmetry Check", task)

    def run_visualization(
        self, show_plots: bool = True, save_outputs: bool = False
    ) -> bool:
        def task(show: bool, save: bool):
            if self.percentages is None or self.simulator.last_state is None:
                raise SimulationError(
                    "No occupancy results available. Run the occupancy simulation first."
                )
            plot_path = (
                (DEFAULT_OUTPUT_DIR / self.v_cfg.DEFAULT_OCCUPANCY_PLOT_FILENAME)
                if save
                else None
            )
            self.visualizer.plot_occupancy(
                self.percentages, show_plot=show, save_path=plot_path
            )
            if plot_path and plot_path.exists():
                print(f"Occupancy plot saved: {plot_path.resolve()}")
            elif plot_path:
                print(
                    f"Occupancy plot FAILED to save to: {plot_path.resolve()}"
                )

            image = render_board_image(
                self.simulator.last_state, self.percentages, self.v_cfg
            )
            if save:
                saved_path = save_board_image(
                    image,
                    DEFAULT_OUTPUT_DIR / self.v_cfg.DEFAULT_BOARD_IMAGE_FILENAME,
                )
                print(f"Board image saved: {saved_path}")
            else:
                print("Board image generated (not saving).")

        return self._run_task(
            "Occupancy Visualization", task, show_plots, save_outputs
        )

    def _display_results_table(
        self, tally: OccupancyTally, percentages: OccupancyPercentages
    ) -> None:
        max_table_width = 60
        title = "Empty Cell Occupancy"
        header_separator = "=" * max_table_width
        print(
            f"\n{header_separator}\n{title:^{max_table_width}}\n{header_separator}"
        )
        header_line = f"{'Label':<10}{'Cell':>10}{'Count':>20}{'Probability':>20}"
        table_separator = "-" * len(header_line)
        print(f"{header_line}\n{table_separator}")
        for label, coordinate in zip(POSITION_LABELS, POSITION_COORDINATES):
            cell = f"({coordinate[0]}, {coordinate[1]})"
            print(
                f"{label:<10}{cell:>10}{tally.count(label):>20,}{percentages[label]:>20.6f}"
            )
        print(table_separator)
        print(
            f"{'Total':<10}{'':>10}{tally.iterations:>20,}{float(percentages.values.sum()):>20.6f}"
        )
        print(header_separator + "\n")

    def run_all(
        self,
        run_symmetry: bool = True,
        run_visualization: bool = True,
        show_plots: bool = True,
        save_outputs: bool = False,
    ) -> bool:
        max_width = 78
        title = "2x3 Grid Empty Cell Occupancy Run"
        print(
            f"\n{'*' * max_width}\n{title:^{max_width}}\n{'*' * max_width}"
        )
        overall_start_time = time.monotonic()
        task_results: list[bool] = [self.run_occupancy_simulation()]

        if task_results[0]:
            if run_symmetry:
                task_results.append(self.run_symmetry_check())
            if run_visualization:
                task_results.append(
                    self.run_visualization(show_plots, save_outputs)
                )

        overall_elapsed_time = time.monotonic() - overall_start_time
        overall_success = all(task_results)

        print("\n--- Simulation Summary ---")
        print(f"Executed in {overall_elapsed_time:.2f} seconds.")
        status_message = (
            "All selected tasks completed successfully"
            if overall_success
            else "One or more tasks FAILED"
        )
        print(f"Overall status: {status_message}")
        print("*" * max_width + "\n")

        return overall_success


def main_simulation_runner(
    walk_config: WalkConfig | None = None,
    show_plots: bool = False,
    save_outputs: bool = False,
) -> int:
    plt.ioff()
    exit_code = 0

    try:
        print("Initializing Simulation Runner...")
        runner = SimulationRunner(walk_config)
        success = runner.run_all(
            run_symmetry=True,
            run_visualization=True,
            show_plots=show_plots,
            save_outputs=save_outputs,
        )
        exit_code = 0 if success else 1

    except ConfigError as e:
        print(
            f"\nCRITICAL CONFIGURATION ERROR: {e}\nAborting simulation.",
            file=sys.stderr,
        )
        exit_code = 2
    except Exception as e:
        print(
            f"\nCRITICAL UNHANDLED ERROR: {type(e).__name__}: {e}",
            file=sys.stderr,
        )
        traceback.print_exc(file=sys.stderr)
        exit_code = 3
    finally:
        plt.close("all")

    print(f"\nSimulation run finished. Exiting with code {exit_code}.")
    return exit_code


def _option_value(command_args: Sequence[str], index: int, option: str) -> str:
    if index >= len(command_args):
        raise UsageError(f"Missing value after '{option}'.")
    return command_args[index]


def _int_option(command_args: Sequence[str], index: int, option: str) -> int:
    value = _option_value(command_args, index, option)
    try:
        return int(value)
    except ValueError as e:
        raise UsageError(
            f"Expected an integer after '{option}', got '{value}'."
        ) from e


def parse_run_arguments(
    command_args: Sequence[str],
) -> Tuple[dict[str, Any], bool]:
    overrides: dict[str, Any] = {}
    save_outputs = False
    index = 0

    while index < len(command_args):
        arg = command_args[index]
        if arg in ("-n", "--iterations"):
            overrides["NUM_ITERATIONS"] = _int_option(
                command_args, index + 1, arg
            )
            index += 2
        elif arg == "--seed":
            overrides["SEED"] = _int_option(command_args, index + 1, arg)
            index += 2
        elif arg == "--start":
            overrides["START_X"] = _int_option(command_args, index + 1, arg)
            overrides["START_Y"] = _int_option(command_args, index + 2, arg)
            index += 3
        elif arg == "--policy":
            overrides["POLICY"] = _option_value(command_args, index + 1, arg)
            index += 2
        elif arg == "--save":
            save_outputs = True
            index += 1
        else:
            raise UsageError(f"Unknown or invalid argument: {arg}")

    return overrides, save_outputs


def run_tests(verbosity_level: int = 2) -> int:
    print("\n--- Running Unit Tests ---")
    import test_grid_occupancy_sim

    loader = unittest.TestLoader()
    suite = loader.loadTestsFromTestCase(
        test_grid_occupancy_sim.TestSimulationSuite
    )
    runner = unittest.TextTestRunner(
        verbosity=verbosity_level, failfast=False, buffer=True
    )
    result = runner.run(suite)

    print("\n--- Unit Tests Complete ---")
    print(f"Total Tests Run: {result.testsRun}")
    print(f"Failures: {len(result.failures)}")
    print(f"Errors: {len(result.errors)}")
    print(f"Skipped: {len(result.skipped)}")

    return 0 if result.wasSuccessful() else 1


def display_help() -> None:
    try:
        script_name = Path(__file__).name
    except NameError:
        script_name = "grid_occupancy_sim.py"

    help_text = f"""
Usage: python {script_name} [options]

Empty Cell Occupancy on a 2x3 Grid: Monte Carlo estimate of where the single
empty cell spends its time under a uniform four-direction random walk.

Options:
  --test [-v N]     : Run the unit test suite. Optional verbosity level N
                      can be 0, 1 or 2 (default 2).
  --help, -h        : Display this help message and exit.
  -n, --iterations N: Number of accepted moves (default {WalkConfig.NUM_ITERATIONS:,};
                      the reference run uses {REFERENCE_ITERATIONS:,}).
  --seed S          : Seed for the random generator (default: OS entropy).
  --start X Y       : Starting empty cell, X in 0..2 and Y in 0..1 (default 0 0).
  --policy P        : 'rejection' (redraw on illegal moves, default) or
                      'legal_only' (draw among legal directions only).
  --save            : Write the occupancy plot and board image as PNG files.
                      Nothing is written to disk without this flag.

Output:
  Six lines 'In <label>: <value>' for labels zero..five in row-major order:
    [zero ][one ][two ]
    [three][four][five]
  followed by a summary table, a symmetry check and, with --save, PNG files
  saved to: {DEFAULT_OUTPUT_DIR.resolve()}
"""
    print(help_text)


def _parse_test_verbosity(command_args: Sequence[str]) -> int:
    if "-v" not in command_args:
        return 2
    v_index = list(command_args).index("-v")
    if v_index + 1 >= len(command_args):
        print(
            "Warning: Missing verbosity level after -v argument. Using default (2).",
            file=sys.stderr,
        )
        return 2
    level_str = command_args[v_index + 1]
    if not level_str.isdigit() or int(level_str) not in (0, 1, 2):
        print(
            "Warning: Invalid verbosity level specified after -v. Must be 0, 1, or 2. Using default (2).",
            file=sys.stderr,
        )
        return 2
    return int(level_str)


def main(argv: Sequence[str] | None = None) -> int:
    command_args = list(sys.argv[1:] if argv is None else argv)

    if "--test" in command_args:
        return run_tests(verbosity_level=_parse_test_verbosity(command_args))

    if "--help" in command_args or "-h" in command_args:
        display_help()
        return 0

    try:
        overrides, save_outputs = parse_run_arguments(command_args)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        display_help()
        return 4

    try:
        walk_config = WalkConfig(**overrides)
    except ConfigError as e:
        print(
            f"\nCRITICAL CONFIGURATION ERROR: {e}\nAborting simulation.",
            file=sys.stderr,
        )
        return 2

    return main_simulation_runner(
        walk_config, show_plots=False, save_outputs=save_outputs
    )


if __name__ == "__main__":
    sys.exit(main())
