"""
Built-in Rule Validation

Runs the bundled rule scripts through the Stepper and checks the classic
behaviours each one is known for: Conway still lifes, oscillators and gliders,
Wireworld signal propagation, and bounded Gray-Scott concentrations.
"""

import pytest

from cellscript.config import EngineConfig
from cellscript.core.stepper import Stepper
from cellscript.core.topology import Topology
from cellscript.core.value import ValueKind
from cellscript.presets import PRESETS, get_preset, list_presets

BLOCK = [[True, True],
         [True, True]]
BLINKER = [[True, True, True]]
GLIDER = [[False, True, False],
          [False, False, True],
          [True, True, True]]


@pytest.fixture
def stepper():
    with Stepper(EngineConfig(workers=1, seed=1)) as s:
        yield s


def live_cells(stepper):
    return {tuple(c) for c, v in stepper.grid.values() if v.payload}


def with_preset(stepper, name, topology):
    stepper.compile(get_preset(name))
    stepper.resize(topology)
    return stepper


class TestPresetCatalog:
    """Test preset lookup."""

    def test_list_presets(self):
        assert list_presets() == sorted(PRESETS)
        assert "life" in list_presets()

    def test_unknown_preset(self):
        with pytest.raises(KeyError, match="available"):
            get_preset("langton")

    @pytest.mark.parametrize("name", sorted(PRESETS))
    @pytest.mark.parametrize("topology", [Topology.square(6, 6), Topology.hex(6, 6)])
    def test_every_preset_runs(self, stepper, name, topology):
        """Every preset compiles, seeds itself and steps without faults."""
        with_preset(stepper, name, topology)
        assert stepper.randomize().fault_count == 0
        report = stepper.step()
        assert report.fault_count == 0
        assert stepper.generation() == 1


class TestConwayBaseline:
    """Test fundamental Conway behaviors."""

    def test_block_stable_still_life(self, stepper):
        """2x2 block remains stable."""
        with_preset(stepper, "life", Topology.square(6, 6))
        stepper.grid.load_pattern(BLOCK, (2, 2))
        initial = live_cells(stepper)
        assert len(initial) == 4

        for generation in range(20):
            stepper.step()
            assert live_cells(stepper) == initial, f"Block unstable at generation {generation}"

    def test_blinker_oscillates_period_2(self, stepper):
        """Horizontal blinker turns vertical, then back."""
        with_preset(stepper, "life", Topology.square(8, 8))
        stepper.grid.load_pattern(BLINKER, (3, 2))
        horizontal = live_cells(stepper)

        stepper.step()
        assert live_cells(stepper) == {(2, 3), (3, 3), (4, 3)}

        stepper.step()
        assert live_cells(stepper) == horizontal

    @pytest.mark.parametrize("size", [8, 12, 20])
    def test_glider_translates_diagonally(self, stepper, size):
        """A glider moves one cell down and right every four generations."""
        with_preset(stepper, "life", Topology.square(size, size, edge="wrap"))
        stepper.grid.load_pattern(GLIDER, (1, 1))
        start = live_cells(stepper)
        assert len(start) == 5

        stepper.run(4)
        shifted = {((r + 1) % size, (c + 1) % size) for r, c in start}
        assert live_cells(stepper) == shifted

    def test_glider_wraps_around_torus(self, stepper):
        """After 4 * size generations the glider is back where it started."""
        with_preset(stepper, "life", Topology.square(8, 8, edge="wrap"))
        stepper.grid.load_pattern(GLIDER, (0, 0))
        start = live_cells(stepper)
        stepper.run(32)
        assert live_cells(stepper) == start

    def test_highlife_replicator_birth(self, stepper):
        """HighLife differs from Life only by birth on six neighbors."""
        with_preset(stepper, "highlife", Topology.square(5, 5, edge="dead"))
        stepper.grid.load([
            [False, False, False, False, False],
            [False, True, True, True, False],
            [False, True, False, True, False],
            [False, True, False, False, False],
            [False, False, False, False, False],
        ])
        stepper.step()
        assert stepper.get((2, 2)).payload is True


class TestWireworld:
    """Test electron propagation along a wire."""

    def test_electron_moves_along_wire(self, stepper):
        with_preset(stepper, "wireworld", Topology.square(7, 3, edge="dead"))
        stepper.grid.load([
            [0, 0, 0, 0, 0, 0, 0],
            [2, 1, 3, 3, 3, 3, 0],
            [0, 0, 0, 0, 0, 0, 0],
        ])

        stepper.step()
        assert stepper.grid.to_native()[1] == [3, 2, 1, 3, 3, 3, 0]
        stepper.step()
        assert stepper.grid.to_native()[1] == [3, 3, 2, 1, 3, 3, 0]


class TestOtherPresets:
    """Test the remaining bundled rules."""

    def test_rock_paper_scissors_takeover(self, stepper):
        """Cells surrounded by enough predators convert."""
        with_preset(stepper, "rock_paper_scissors", Topology.square(3, 3, edge="wrap"))
        stepper.grid.load([[1, 1, 1], [0, 0, 0], [0, 0, 0]])
        stepper.step()
        assert stepper.grid.count(1) == 9

    def test_hex_life_uses_six_neighbors(self, stepper):
        """Two live neighbors give birth on the hex lattice."""
        with_preset(stepper, "hex_life", Topology.hex(5, 5, edge="dead"))
        stepper.set_cell((2, 3), True)
        stepper.set_cell((1, 3), True)
        stepper.step()
        assert stepper.get((2, 2)).payload is True

    def test_gray_scott_stays_bounded(self, stepper):
        with_preset(stepper, "gray_scott", Topology.square(10, 10))
        assert stepper.rule.kind is ValueKind.SEQUENCE
        stepper.randomize(seed=4)
        stepper.run(5)
        for _, value in stepper.grid.values():
            u, v = value.to_native()
            assert 0.0 <= u <= 1.0
            assert 0.0 <= v <= 1.0
