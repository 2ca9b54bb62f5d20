import pytest

from sucad.config import (
    Params,
    Settings,
    SimType,
    SucadConfig,
    build_series,
    load_config,
    parse_values,
    split_list,
    write_input_template,
)


def test_build_series_inclusive():
    assert build_series(3.5, 6.5, 1.0) == [3.5, 4.5, 5.5, 6.5]
    assert build_series(2.0, 2.0, 0.5) == [2.0]
    assert build_series(3.0, 1.0, 1.0) == [3.0, 2.0, 1.0]
    with pytest.raises(ValueError):
        build_series(0.0, 1.0, 0.0)


def test_parse_values_colon_range_and_list():
    assert parse_values("3.5:1.0:6.5") == (3.5, 4.5, 5.5, 6.5)
    assert len(parse_values("2.5:1.0:6.5")) == 5
    assert parse_values("1:3") == (1.0, 2.0, 3.0)
    assert parse_values("18.5") == (18.5,)
    assert parse_values("0.4, 0.7, 1.0") == (0.4, 0.7, 1.0)
    assert parse_values("[1 2 3]") == (1.0, 2.0, 3.0)
    with pytest.raises(ValueError):
        parse_values("1:2:3:4")
    with pytest.raises(ValueError):
        parse_values("")


def test_split_list():
    assert split_list("(a, b ,c)") == ["a", "b", "c"]
    assert split_list("x y\nz") == ["x", "y", "z"]


def test_template_roundtrip(tmp_path):
    path = tmp_path / "input_template.txt"
    write_input_template(path)
    cfg = load_config(path)
    default = SucadConfig()

    assert cfg.design == default.design
    assert cfg.params == Params()
    assert cfg.settings == Settings()
    assert cfg.sweep == default.sweep
    assert cfg.environment.T_ground_K == pytest.approx(default.environment.T_ground_K)
    assert cfg.environment.day_of_year == pytest.approx(default.environment.day_of_year)


def test_load_overrides_and_enum_names(tmp_path):
    path = tmp_path / "input_case.txt"
    path.write_text(
        "\n".join(
            [
                "[design]",
                "wing_span_m = 4.5   # m",
                "[structure]",
                "corr_fact = 1.21",
                "[settings]",
                "sim_type = start_at_init_cond",
                "climb_allowed = yes",
                "[init_cond]",
                "soc = 0.8",
                "[sweep]",
                "var1 = clearness",
                "values1 = 0.4, 1.0",
            ]
        ),
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg.design.wing_span_m == 4.5
    assert cfg.design.aspect_ratio == 18.5
    assert cfg.params.structure.corr_fact == 1.21
    assert cfg.settings.sim_type is SimType.START_AT_INIT_COND
    assert cfg.settings.climb_allowed is True
    assert cfg.settings.init_cond.soc == 0.8
    assert cfg.sweep.axes() == [("clearness", "0.4, 1.0")]


def test_sim_type_accepts_integer(tmp_path):
    path = tmp_path / "input_int.txt"
    path.write_text("[settings]\nsim_type = 1\n", encoding="utf-8")
    assert load_config(path).settings.sim_type is SimType.START_AT_INIT_COND


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / "input_bad.txt"
    path.write_text("[design]\nwingspan = 3\n", encoding="utf-8")
    with pytest.raises(KeyError, match="wingspan"):
        load_config(path)


def test_unknown_section_rejected(tmp_path):
    path = tmp_path / "input_bad.txt"
    path.write_text("[fuel_cell]\nx = 1\n", encoding="utf-8")
    with pytest.raises(KeyError, match="fuel_cell"):
        load_config(path)


def test_invalid_value_wrapped(tmp_path):
    path = tmp_path / "input_bad.txt"
    path.write_text("[battery]\neta_chrg = high\n", encoding="utf-8")
    with pytest.raises(ValueError, match="eta_chrg") as excinfo:
        load_config(path)
    assert excinfo.value.__cause__ is not None


def test_init_cond_in_settings_rejected(tmp_path):
    path = tmp_path / "input_bad.txt"
    path.write_text("[settings]\ninit_cond = 0.5\n", encoding="utf-8")
    with pytest.raises(KeyError, match="init_cond"):
        load_config(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.txt")


def test_propulsion_chain_efficiency():
    prop = Params().propulsion
    assert prop.eta_chain == pytest.approx(0.95 * 0.85 * 0.97 * 0.85)
