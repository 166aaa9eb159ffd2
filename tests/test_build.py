"""
Tests for the full pipeline, configuration, I/O and the CLI.

Tests cover:
- build_harmonic_coordinates end to end
- Config / FieldMetadata
- Cage and field persistence
- Cage statistics
- run_all orchestrator
"""

import json

import pytest
import numpy as np

from common.cage import Cage, GeometryError, box_cage
from common.config import Config, Solver, FieldMetadata
from common.io import load_cage, save_cage, save_field, load_field, export_cage_mesh
from common.mesh_ops import compute_cage_stats, check_cage_closed
from common.voxel import CellState
from harmonic_coords.build import build_harmonic_coordinates, build_grid

import run_all

from conftest import make_frustum


# ============== Pipeline Tests ==============

class TestBuild:
    """End-to-end coordinate field construction."""

    def test_unit_cube_scenario(self, unit_cube):
        field = build_harmonic_coordinates(unit_cube, resolution=(3, 3, 3), tau=1e-9)
        grid = field.grid

        assert field.converged
        assert grid.state((1, 1, 1)) == CellState.INTERIOR
        assert field.metadata.counts["boundary"] == 26
        assert field.metadata.counts["interior"] == 1

        expected = np.mean([grid.coordinates(n) for n in grid.neighbours((1, 1, 1))], axis=0)
        np.testing.assert_allclose(grid.coordinates((1, 1, 1)), expected, atol=1e-6)

    def test_query_point(self, unit_cube):
        field = build_harmonic_coordinates(unit_cube, resolution=(3, 3, 3), tau=1e-9)
        vec = field.grid.coordinates_at([0.5, 0.45, 0.55])
        np.testing.assert_array_equal(vec, field.grid.coordinates((1, 1, 1)))
        assert field.grid.coordinates_at([2.0, 0.5, 0.5]) is None

    def test_exterior_query_is_none(self, frustum):
        field = build_harmonic_coordinates(frustum, resolution=(8, 8, 8), tau=1e-5)
        assert field.grid.coordinates_at([0.02, 0.02, 0.98]) is None

    def test_metadata(self, frustum):
        field = build_harmonic_coordinates(frustum, Config(resolution=(6, 6, 6), tau=1e-5),
                                           cage_id="frustum")
        meta = field.metadata
        assert meta.cage_id == "frustum"
        assert meta.dimensions == [6, 6, 6]
        assert meta.n_cage_vertices == 8
        assert meta.iterations == field.result.iterations
        assert sum(meta.counts.values()) == 216
        assert meta.generation_params["solver"] == "sparse"
        assert field.summary()["converged"] == field.converged

    def test_overrides_beat_config(self, unit_cube):
        config = Config(resolution=(5, 5, 5), solver=Solver.SPARSE)
        field = build_harmonic_coordinates(unit_cube, config, resolution=(3, 3, 3), solver="basic")
        assert field.grid.dimensions == (3, 3, 3)
        assert field.result.method == "basic"

    def test_iteration_cap_not_fatal(self, frustum):
        field = build_harmonic_coordinates(frustum, resolution=(8, 8, 8), tau=0.0, max_iterations=3)
        assert not field.converged
        assert field.result.iterations == 3
        assert field.metadata.converged is False

    def test_invalid_cage_fails_early(self):
        cage = box_cage()
        cage.faces[0, 0] = 99
        with pytest.raises(GeometryError):
            build_harmonic_coordinates(cage, resolution=(3, 3, 3))

    @pytest.mark.parametrize("lo, hi", [
        ((0.0, 0.0, 0.0), (1e-6, 1e-6, 1e-6)),
        ((1e6, -1e6, 5e5), (1e6 + 1.0, -1e6 + 1.0, 5e5 + 1.0)),
    ])
    def test_cage_scale_and_offset(self, lo, hi):
        """Tiny and far-offset cubes classify like the unit cube."""
        field = build_harmonic_coordinates(box_cage(lo, hi), resolution=(3, 3, 3), tau=1e-9)
        assert field.grid.state((1, 1, 1)) == CellState.INTERIOR
        assert field.metadata.counts["boundary"] == 26
        assert field.grid.coordinates((1, 1, 1)).sum() == pytest.approx(1.0, abs=1e-5)

    def test_cage_validated_once(self, unit_cube, monkeypatch):
        calls = []
        original = Cage.validate

        def counting_validate(cage):
            calls.append(cage)
            return original(cage)

        monkeypatch.setattr(Cage, "validate", counting_validate)
        build_harmonic_coordinates(unit_cube, resolution=(3, 3, 3))
        assert len(calls) == 1

    def test_build_grid_rejects_invalid_cage(self):
        cage = box_cage()
        cage.faces[3, 2] = 50
        with pytest.raises(GeometryError):
            build_grid(cage, (3, 3, 3))

    def test_build_grid_classifies(self, frustum):
        grid = build_grid(frustum, (5, 5, 5))
        assert grid.counts()["uninitialized"] == 0


# ============== Config Tests ==============

class TestConfig:
    def test_default_values(self):
        config = Config()
        assert config.resolution == (32, 32, 32)
        assert config.tau == 1e-6
        assert config.max_iterations == 10000
        assert config.solver is Solver.SPARSE

    def test_json(self, tmp_path):
        config = Config(resolution=(4, 5, 6), tau=1e-4, solver="basic", output_dir=tmp_path / "out")
        path = tmp_path / "config.json"
        config.save(path)
        loaded = Config.from_json(path)
        assert loaded.to_dict() == config.to_dict()
        assert loaded.solver is Solver.BASIC

    def test_replace_ignores_none(self):
        config = Config(tau=1e-3).replace(tau=None, max_iterations=7)
        assert config.tau == 1e-3
        assert config.max_iterations == 7

    @pytest.mark.parametrize("kwargs", [
        {"resolution": (0, 4, 4)},
        {"resolution": (4, 4)},
        {"tau": -1.0},
        {"max_iterations": -2},
        {"solver": "gpu"},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            Config(**kwargs)

    def test_metadata_dict(self):
        meta = FieldMetadata(
            cage_id="c", n_cage_vertices=8, n_cage_faces=6, dimensions=[3, 3, 3],
            bounds_min=[0, 0, 0], bounds_max=[1, 1, 1], cell_size=[1 / 3] * 3,
            counts={"boundary": 26}, converged=True, iterations=2, final_delta=0.0
        )
        assert FieldMetadata.from_dict(meta.to_dict()) == meta


# ============== I/O Tests ==============

class TestIO:
    def test_cage_file(self, tmp_path, frustum):
        path = tmp_path / "cages" / "frustum.json"
        save_cage(frustum, path)
        loaded = load_cage(path)
        np.testing.assert_allclose(loaded.vertices, frustum.vertices)
        np.testing.assert_array_equal(loaded.faces, frustum.faces)

    def test_cage_file_missing_faces(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"vertices": [[0, 0, 0]]}))
        with pytest.raises(ValueError, match="faces"):
            load_cage(path)

    def test_invalid_cage_file(self, tmp_path):
        path = tmp_path / "flat.json"
        path.write_text(json.dumps({
            "vertices": [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]],
            "faces": [[0, 1, 2, 3]]
        }))
        with pytest.raises(GeometryError):
            load_cage(path)

    def test_field_file(self, tmp_path, unit_cube):
        field = build_harmonic_coordinates(unit_cube, resolution=(3, 3, 3), tau=1e-9)
        path = save_field(field.grid, tmp_path / "cube.npz", field.metadata)
        grid, meta = load_field(path)

        assert grid.dimensions == (3, 3, 3)
        np.testing.assert_array_equal(grid.classification, field.grid.classification)
        np.testing.assert_array_equal(grid.coordinates((1, 1, 1)), field.grid.coordinates((1, 1, 1)))
        assert meta == field.metadata

    def test_field_without_sidecar(self, tmp_path, cube_grid):
        path = save_field(cube_grid, tmp_path / "plain.npz")
        _, meta = load_field(path)
        assert meta is None

    def test_export_cage_mesh(self, tmp_path, unit_cube):
        pytest.importorskip("trimesh")
        path = export_cage_mesh(unit_cube, tmp_path / "cage.obj")
        assert path.exists()


# ============== Cage Stats Tests ==============

class TestCageStats:
    def test_closed_box(self, unit_cube):
        pytest.importorskip("trimesh")
        stats = compute_cage_stats(unit_cube)
        assert stats["n_triangles"] == 12
        assert stats["is_watertight"]
        assert stats["volume"] == pytest.approx(1.0)
        assert stats["surface_area"] == pytest.approx(6.0)
        assert check_cage_closed(unit_cube)

    def test_open_box(self):
        pytest.importorskip("trimesh")
        cage = box_cage()
        cage.faces = cage.faces[:5]
        assert not check_cage_closed(cage)


# ============== CLI Tests ==============

class TestRunAll:
    def test_unit_cube(self, tmp_path):
        code = run_all.main([
            "--unit-cube", "--resolution", "3", "3", "3",
            "--tau", "1e-9", "--output", str(tmp_path)
        ])
        assert code == 0
        summary = json.loads((tmp_path / "run_summary.json").read_text())
        assert summary["errors"] == []
        assert summary["cages"][0]["status"] == "success"
        assert (tmp_path / "fields" / "unit_cube.npz").exists()
        assert (tmp_path / "fields" / "unit_cube.json").exists()

    def test_cage_file_and_error(self, tmp_path):
        good = tmp_path / "frustum.json"
        save_cage(make_frustum(), good)
        bad = tmp_path / "broken.json"
        bad.write_text(json.dumps({"vertices": [[0, 0, 0]], "faces": []}))

        code = run_all.main([
            "--cage", str(good), str(bad), "--resolution", "5", "5", "5",
            "--solver", "basic", "--output", str(tmp_path / "out")
        ])
        assert code == 1
        summary = json.loads((tmp_path / "out" / "run_summary.json").read_text())
        statuses = {c["cage_id"]: c["status"] for c in summary["cages"]}
        assert statuses == {"frustum": "success", "broken": "error"}

    def test_no_cages(self, tmp_path):
        assert run_all.main(["--output", str(tmp_path)]) == 1
