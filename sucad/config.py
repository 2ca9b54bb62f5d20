"""Configuration dataclasses and INI-style input file handling.

The configuration is explicit: every evaluation is driven by four immutable
records (design, environment, technology parameters, settings) plus an
optional sweep definition. Input files use an INI-like syntax where each
section maps to one of the nested dataclasses below.
"""

from __future__ import annotations

import configparser
import enum
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple, get_args, get_origin, get_type_hints

from sucad.units import units

logger = logging.getLogger(__name__)


# ============================
# Configuration (dataclasses)
# ============================


@dataclass(frozen=True)
class Design:
    """Airplane design variables and plane-specific system data."""

    wing_span_m: float = 5.6
    aspect_ratio: float = 18.5
    battery_mass_kg: float = 2.9

    avionics_power_w: float = 6.0
    avionics_mass_kg: float = 1.20
    payload_power_w: float = 0.0
    payload_mass_kg: float = 0.0
    p_prop_max_w: float = 180.0


@dataclass(frozen=True)
class Environment:
    """Flight environment for one evaluation."""

    day_of_year: float = 5 * 30.5 + 21
    lat_deg: float = 47.6
    lon_deg: float = 8.53
    # 120 m AGL above a 416 m ground elevation
    h_0_m: float = 416.0 + 120.0
    h_max_m: float = 700.0
    h_ground_m: float = 416.0
    T_ground_K: float = units.celsius_to_kelvin(25.0)

    turbulence: float = 0.0
    # Relative increase of power consumption during the day, e.g. due to thermals
    turbulence_day: float = 0.0
    clearness: float = 1.0
    albedo: float = 0.12

    # [s] shift applied to the solar-position computation (daylight saving time)
    add_solar_timeshift_s: float = -3600.0
    # [h] display only: converts clock times of the results to solar time
    plot_solar_timeshift_h: float = -1.533


@dataclass(frozen=True)
class StructureParams:
    """Airframe mass scaling m_af = k_af * b**x_span * AR**x_aspect, times corr_fact."""

    corr_fact: float = 1.0
    k_af_kg: float = 0.0130
    x_span: float = 3.1
    x_aspect: float = -0.25


@dataclass(frozen=True)
class SolarParams:
    """Solar module, MPPT and irradiance-model constants."""

    eta_sc: float = 0.237
    eta_cbr: float = 0.90
    eta_mppt: float = 0.95
    coverage: float = 0.85

    m_sc_kg_per_m2: float = 0.32
    m_enc_kg_per_m2: float = 0.22
    # MPPT units sharing the module power
    n_mppt: int = 1

    tilt_deg: float = 5.0
    eta_dir_rel: float = 1.0
    eta_diff_rel: float = 0.90
    aoi_a_r: float = 0.16

    diffuse_fraction: float = 0.10
    cloud_scatter: float = 0.30
    altitude_coeff_per_km: float = 0.14
    irradiance_ref_w_m2: float = 1000.0


@dataclass(frozen=True)
class BatteryParams:
    e_bat_wh_per_kg: float = 240.0
    eta_chrg: float = 0.95
    eta_dischrg: float = 0.95


@dataclass(frozen=True)
class PropulsionParams:
    """Propulsion chain efficiencies and specific mass."""

    eta_ctrl: float = 0.95
    eta_mot: float = 0.85
    eta_grb: float = 0.97
    eta_plr: float = 0.85
    k_prop_kg_per_w: float = 0.0017

    @property
    def eta_chain(self) -> float:
        return self.eta_ctrl * self.eta_mot * self.eta_grb * self.eta_plr


@dataclass(frozen=True)
class AeroParams:
    c_l: float = 0.8
    c_d_afl: float = 0.013
    c_d_par: float = 0.006
    e_oswald: float = 0.9


@dataclass(frozen=True)
class Params:
    """Airplane general technological parameters."""

    structure: StructureParams = StructureParams()
    solar: SolarParams = SolarParams()
    battery: BatteryParams = BatteryParams()
    propulsion: PropulsionParams = PropulsionParams()
    aero: AeroParams = AeroParams()


class SimType(enum.IntEnum):
    START_AT_EQUILIBRIUM = 0
    START_AT_INIT_COND = 1


@dataclass(frozen=True)
class InitCond:
    soc: float = 0.46
    # launch time [s] on the simulation clock
    t_s: float = 4.0 * 3600 + 32 * 60


@dataclass(frozen=True)
class Settings:
    """Evaluation settings. Governs the integrator, not the physics."""

    dt_s: float = 100.0
    sim_time_days: float = 2.0
    sim_type: SimType = SimType.START_AT_EQUILIBRIUM
    init_cond: InitCond = InitCond()

    climb_allowed: bool = False
    find_max_altitude: bool = False
    use_aoi: bool = False
    use_dir_diff_rad: bool = False

    debug: bool = False


@dataclass(frozen=True)
class SweepConfig:
    """Up to three swept variables.

    Variable names are the lower-case SweepVariable members (e.g. wing_span).
    Values are either a list ("3.5, 4.5") or a colon range ("3.5:1.0:6.5").
    An empty variable name leaves that axis unused.
    """

    var1: str = ""
    values1: str = ""
    var2: str = ""
    values2: str = ""
    var3: str = ""
    values3: str = ""

    def axes(self) -> List[Tuple[str, str]]:
        pairs = [(self.var1, self.values1), (self.var2, self.values2), (self.var3, self.values3)]
        return [(v.strip(), vals) for v, vals in pairs if v.strip()]


@dataclass(frozen=True)
class SucadConfig:
    """Top-level configuration for a design run."""

    design: Design = Design()
    environment: Environment = Environment()
    params: Params = Params()
    settings: Settings = Settings()
    sweep: SweepConfig = SweepConfig()


# ============================
# Input file handling
# ============================


def _parse_bool(value: str) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _strip_wrapping_quotes(raw: str) -> str:
    """Remove a single matching pair of wrapping quotes from a token."""
    if len(raw) >= 2 and ((raw[0] == raw[-1] == '"') or (raw[0] == raw[-1] == "'")):
        return raw[1:-1]
    return raw


def split_list(value: str) -> List[str]:
    """Split a comma/space separated list string into tokens."""

    v = value.strip().replace("\n", " ")
    if (v.startswith("(") and v.endswith(")")) or (v.startswith("[") and v.endswith("]")):
        v = v[1:-1].strip()

    if "," in v:
        parts = [p.strip() for p in v.split(",")]
    else:
        parts = [p.strip() for p in v.split()]

    return [p for p in parts if p]


def build_series(min_value: float, max_value: float, delta: float) -> List[float]:
    """Inclusive range from min_value to max_value in steps of delta."""
    if delta <= 0:
        raise ValueError("delta must be > 0")

    if min_value == max_value:
        return [min_value]

    direction = 1.0 if max_value > min_value else -1.0
    step = direction * delta
    eps = abs(delta) * 1e-9 + 1e-12

    values: List[float] = []
    current = min_value
    while (current <= max_value + eps) if direction > 0 else (current >= max_value - eps):
        values.append(round(current, 12))
        current += step

    return values


def parse_values(raw: str) -> Tuple[float, ...]:
    """Parse a value sequence: "a, b, c", "a b c" or colon range "start:step:stop"."""

    s = _strip_wrapping_quotes(raw.strip())
    if ":" in s:
        parts = [p.strip() for p in s.split(":")]
        if len(parts) == 2:
            start, stop, step = float(parts[0]), float(parts[1]), 1.0
        elif len(parts) == 3:
            start, step, stop = float(parts[0]), float(parts[1]), float(parts[2])
        else:
            raise ValueError(f"Invalid range {raw!r}; expected start:step:stop")
        return tuple(build_series(start, stop, abs(step)))
    values = tuple(float(p) for p in split_list(s))
    if not values:
        raise ValueError(f"Empty value sequence: {raw!r}")
    return values


def _coerce_value(raw: str, typ):
    """Coerce a string value from the input file into the annotated field type."""

    raw = _strip_wrapping_quotes(raw.strip())

    if typ is str:
        return raw
    if typ is float:
        return float(raw)
    if typ is int:
        return int(float(raw))  # tolerates inputs like "3.0"
    if typ is bool:
        return _parse_bool(raw)
    if isinstance(typ, type) and issubclass(typ, enum.Enum):
        try:
            return typ(int(float(raw)))
        except ValueError:
            return typ[raw.strip().upper()]

    origin = get_origin(typ)
    args = get_args(typ)
    if origin in (tuple, Tuple) and len(args) == 2 and args[1] is Ellipsis:
        return tuple(_coerce_value(p, args[0]) for p in split_list(raw))

    raise TypeError(f"Unsupported config field type {typ!r} for value {raw!r}")


def _update_dataclass_from_section(default_obj, section_name: str, section) -> object:
    """Return a new dataclass instance with fields overridden from a config section."""

    if not section:
        return default_obj

    allowed = {f.name for f in fields(default_obj)}
    unknown = sorted(set(section.keys()) - allowed)
    if unknown:
        raise KeyError(
            f"Unknown keys in section [{section_name}]: {', '.join(unknown)}. "
            f"Allowed keys: {', '.join(sorted(allowed))}"
        )

    hints = get_type_hints(type(default_obj))
    updates = {}
    for f in fields(default_obj):
        if f.name in section:
            raw_value = section[f.name]
            try:
                updates[f.name] = _coerce_value(raw_value, hints[f.name])
            except Exception as exc:
                raise ValueError(
                    f"Invalid value in [{section_name}] {f.name}={raw_value!r} "
                    f"(expected {hints[f.name]!r})."
                ) from exc

    return replace(default_obj, **updates) if updates else default_obj


def _new_config_parser() -> configparser.ConfigParser:
    cp = configparser.ConfigParser(
        interpolation=None,
        inline_comment_prefixes=("#", ";"),
    )
    cp.optionxform = str
    return cp


_SECTIONS = (
    "design",
    "environment",
    "structure",
    "solar",
    "battery",
    "propulsion",
    "aero",
    "settings",
    "init_cond",
    "sweep",
)


def load_config(input_path: Path) -> SucadConfig:
    """Load SucadConfig from an INI-style text file.

    The file extension can be .txt; the syntax is INI-like:
      [section]
      key = value

    Sections: design, environment, structure, solar, battery, propulsion,
    aero, settings, init_cond, sweep.
    """

    cfg_default = SucadConfig()

    cp = _new_config_parser()
    read_ok = cp.read(str(input_path))
    if not read_ok:
        raise FileNotFoundError(
            f"Input file not found or unreadable: {input_path}. "
            "Create it (or run with --write-template) and try again."
        )

    unknown_sections = sorted(set(cp.sections()) - set(_SECTIONS))
    if unknown_sections:
        raise KeyError(
            f"Unknown sections: {', '.join(unknown_sections)}. "
            f"Allowed sections: {', '.join(_SECTIONS)}"
        )

    def section(name: str):
        return cp[name] if cp.has_section(name) else None

    design = _update_dataclass_from_section(cfg_default.design, "design", section("design"))
    environment = _update_dataclass_from_section(cfg_default.environment, "environment", section("environment"))

    p = cfg_default.params
    params = Params(
        structure=_update_dataclass_from_section(p.structure, "structure", section("structure")),
        solar=_update_dataclass_from_section(p.solar, "solar", section("solar")),
        battery=_update_dataclass_from_section(p.battery, "battery", section("battery")),
        propulsion=_update_dataclass_from_section(p.propulsion, "propulsion", section("propulsion")),
        aero=_update_dataclass_from_section(p.aero, "aero", section("aero")),
    )

    init_cond = _update_dataclass_from_section(cfg_default.settings.init_cond, "init_cond", section("init_cond"))
    settings_sec: Optional[Dict[str, str]] = dict(section("settings")) if section("settings") is not None else None
    if settings_sec is not None and "init_cond" in settings_sec:
        raise KeyError("Set initial conditions in the [init_cond] section, not in [settings].")
    settings = _update_dataclass_from_section(cfg_default.settings, "settings", settings_sec)
    settings = replace(settings, init_cond=init_cond)

    sweep = _update_dataclass_from_section(cfg_default.sweep, "sweep", section("sweep"))

    logger.debug("Loaded configuration from %s", input_path)
    return SucadConfig(
        design=design,
        environment=environment,
        params=params,
        settings=settings,
        sweep=sweep,
    )


def write_input_template(path: Path, cfg: Optional[SucadConfig] = None) -> None:
    """Write a complete input file template with the current default values."""

    if cfg is None:
        cfg = SucadConfig()

    def fmt(v):
        if isinstance(v, bool):
            return "True" if v else "False"
        if isinstance(v, enum.Enum):
            return v.name.lower()
        if isinstance(v, float):
            return f"{v:.12g}"
        if isinstance(v, tuple):
            return ", ".join(fmt(x) for x in v)
        return str(v)

    lines: List[str] = []
    lines.append("# SUCAD input file (INI-style).")
    lines.append("# Edit values as needed. Units are indicated in the parameter names.")
    lines.append("# Lines starting with '#' or ';' are comments.")
    lines.append("")

    def section(name: str, obj, skip: Tuple[str, ...] = ()) -> None:
        lines.append(f"[{name}]")
        for f in fields(obj):
            if f.name in skip:
                continue
            lines.append(f"{f.name} = {fmt(getattr(obj, f.name))}")
        lines.append("")

    section("design", cfg.design)
    section("environment", cfg.environment)
    section("structure", cfg.params.structure)
    section("solar", cfg.params.solar)
    section("battery", cfg.params.battery)
    section("propulsion", cfg.params.propulsion)
    section("aero", cfg.params.aero)
    section("settings", cfg.settings, skip=("init_cond",))
    section("init_cond", cfg.settings.init_cond)
    section("sweep", cfg.sweep)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines), encoding="utf-8")
