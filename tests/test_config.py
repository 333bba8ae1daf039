from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from hierimpute.data_processing.config import (
    apply_dot_overrides,
    dataclass_to_yaml,
    flatten_dict,
    load_yaml_to_dataclass,
    save_dataclass_yaml,
)
from hierimpute.data_processing.containers import HierImputeConfig


def test_apply_dot_overrides_coerces_and_updates() -> None:
    cfg = HierImputeConfig()

    updated = apply_dot_overrides(
        cfg,
        {
            "io.prefix": "demo",
            "io.verbose": "true",
            "io.n_jobs": "4",
            "io.seed": "7",
            "algo.min_abs_cor": "0.3",
        },
    )

    assert updated.io.prefix == "demo"
    assert updated.io.verbose is True
    assert updated.io.n_jobs == 4
    assert updated.io.seed == 7
    assert pytest.approx(updated.algo.min_abs_cor) == 0.3
    # Original untouched
    assert cfg.io.prefix == "hierimpute"
    assert cfg.algo.min_abs_cor == pytest.approx(0.1)


def test_apply_dot_overrides_none_string_for_optional() -> None:
    cfg = apply_dot_overrides(HierImputeConfig(), {"io.seed": 3})
    cfg = apply_dot_overrides(cfg, {"io.seed": "none"})

    assert cfg.io.seed is None


def test_apply_dot_overrides_unknown_key_raises() -> None:
    with pytest.raises(KeyError):
        apply_dot_overrides(HierImputeConfig(), {"nonexistent.field": 1})
    with pytest.raises(KeyError):
        apply_dot_overrides(HierImputeConfig(), {"algo.nope": 1})
    with pytest.raises(KeyError):
        apply_dot_overrides(HierImputeConfig(), {"io.prefix.deeper": "x"})


def test_apply_dot_overrides_rejects_bad_literal() -> None:
    with pytest.raises(ValueError):
        apply_dot_overrides(HierImputeConfig(), {"algo.rng_strategy": "global"})


def test_apply_dot_overrides_requires_dataclass() -> None:
    with pytest.raises(TypeError):
        apply_dot_overrides({"io": {}}, {"io.seed": 1})


def test_apply_dot_overrides_merges_section_dict() -> None:
    cfg = apply_dot_overrides(HierImputeConfig(), {"sim": {"sim_prop": 0.25}})

    assert cfg.sim.sim_prop == pytest.approx(0.25)
    assert cfg.sim.sim_strategy == "random"


@pytest.mark.parametrize(
    "preset, n_jobs, simulate",
    [("fast", -1, False), ("balanced", 1, False), ("thorough", 1, True)],
)
def test_presets(preset: str, n_jobs: int, simulate: bool) -> None:
    cfg = HierImputeConfig.from_preset(preset)

    assert cfg.io.n_jobs == n_jobs
    assert cfg.sim.simulate_missing is simulate
    assert cfg.algo.min_abs_cor == pytest.approx(0.1)
    assert cfg.algo.rng_strategy == "per_marker"


def test_unknown_preset_raises() -> None:
    with pytest.raises(ValueError):
        HierImputeConfig.from_preset("exhaustive")  # type: ignore[arg-type]


def test_load_yaml_to_dataclass_merges_with_env_and_overlays(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    base = HierImputeConfig.from_preset("fast")
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "io:",
                "  prefix: ${HIERIMPUTE_PREFIX:default}",
                "  seed: ${HIERIMPUTE_SEED:5}",
                "algo:",
                "  min_abs_cor: 0.45",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("HIERIMPUTE_PREFIX", "env_overridden")
    monkeypatch.delenv("HIERIMPUTE_SEED", raising=False)

    cfg = load_yaml_to_dataclass(
        str(path),
        HierImputeConfig,
        base=base,
        overlays={"sim": {"sim_prop": 0.3}},
    )

    assert cfg.io.prefix == "env_overridden"
    assert cfg.io.seed == 5
    assert cfg.io.n_jobs == -1  # preset value survives
    assert pytest.approx(cfg.algo.min_abs_cor) == 0.45
    assert pytest.approx(cfg.sim.sim_prop) == 0.3
    assert base.algo.min_abs_cor == pytest.approx(0.1)


def test_yaml_preset_key_ignored_or_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("preset: fast\nio:\n  n_jobs: 3\n", encoding="utf-8")

    cfg = load_yaml_to_dataclass(str(path), HierImputeConfig)
    assert cfg.io.n_jobs == 3

    with pytest.raises(ValueError):
        load_yaml_to_dataclass(
            str(path), HierImputeConfig, yaml_preset_behavior="error"
        )


def test_yaml_unknown_key_raises(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("algo:\n  threshold: 0.2\n", encoding="utf-8")

    with pytest.raises(KeyError):
        load_yaml_to_dataclass(str(path), HierImputeConfig)


def test_dataclass_yaml_round_trip(tmp_path: Path) -> None:
    cfg = HierImputeConfig.from_preset("thorough")
    path = tmp_path / "dump.yaml"

    save_dataclass_yaml(cfg, str(path))
    loaded = load_yaml_to_dataclass(str(path), HierImputeConfig)

    assert loaded == cfg
    assert yaml.safe_load(dataclass_to_yaml(cfg))["sim"]["simulate_missing"] is True


def test_flatten_dict() -> None:
    assert flatten_dict({"io": {"seed": 1, "prefix": "x"}, "top": 2}) == {
        "io.seed": 1,
        "io.prefix": "x",
        "top": 2,
    }


def test_to_dict_and_apply_overrides() -> None:
    cfg = HierImputeConfig().apply_overrides({"algo.orientation": "allele"})

    assert cfg.to_dict()["algo"]["orientation"] == "allele"
