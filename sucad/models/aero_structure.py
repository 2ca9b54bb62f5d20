"""Aero-structural sizing and electrical power budget.

Maps the geometric design variables (wing span, aspect ratio, battery mass)
to airframe mass, wing and solar module area, battery energy and the
level-flight power budget.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from aerosandbox.library import power_solar
from ambiance import Atmosphere

from sucad.config import AeroParams, Design, Environment, Params
from sucad.exceptions import InvalidDesignError
from sucad.units import G0_MPS2, units

logger = logging.getLogger(__name__)

_R_SPECIFIC_AIR = 287.058


@lru_cache(maxsize=4096)
def _atmosphere_at_altitude(altitude_m_rounded: float) -> Tuple[float, float]:
    """ISA (pressure [Pa], temperature [K])."""
    atm = Atmosphere(float(altitude_m_rounded))
    return float(atm.pressure[0]), float(atm.temperature[0])


def air_density(altitude_m: float, environment: Environment) -> float:
    """Air density: ISA pressure, temperature shifted so that T(h_ground) = T_ground."""

    p_pa, t_isa = _atmosphere_at_altitude(round(altitude_m))
    _, t_isa_ground = _atmosphere_at_altitude(round(environment.h_ground_m))
    t_k = t_isa + (environment.T_ground_K - t_isa_ground)
    return p_pa / (_R_SPECIFIC_AIR * t_k)


def drag_coefficient(aspect_ratio: float, aero: AeroParams) -> float:
    c_d_ind = aero.c_l ** 2 / (math.pi * aero.e_oswald * aspect_ratio)
    return aero.c_d_afl + aero.c_d_par + c_d_ind


def level_flight_power_w(mass_kg: float, wing_area_m2: float, aspect_ratio: float, rho: float, aero: AeroParams) -> float:
    """Mechanical power for steady level flight at the operating lift coefficient."""

    weight_n = mass_kg * G0_MPS2
    c_d = drag_coefficient(aspect_ratio, aero)
    return c_d / aero.c_l ** 1.5 * math.sqrt(2.0 * weight_n ** 3 / (rho * wing_area_m2))


@dataclass(frozen=True)
class DerivedDesign:
    """Quantities derived once per configuration from the design variables."""

    wing_span_m: float
    aspect_ratio: float
    wing_area_m2: float
    solar_area_m2: float

    m_struct_kg: float
    m_solar_kg: float
    m_mppt_kg: float
    m_prop_kg: float
    m_avionics_kg: float
    m_payload_kg: float
    m_bat_kg: float

    E_bat_max_j: float
    p_avionics_w: float
    p_payload_w: float
    p_prop_level_elec_nom_w: float

    @property
    def m_no_bat_kg(self) -> float:
        return (
            self.m_struct_kg
            + self.m_solar_kg
            + self.m_mppt_kg
            + self.m_prop_kg
            + self.m_avionics_kg
            + self.m_payload_kg
        )

    @property
    def m_total_kg(self) -> float:
        return self.m_no_bat_kg + self.m_bat_kg

    @property
    def p_elec_level_tot_nom_w(self) -> float:
        """Nominal total electrical power: propulsion at h_0 + avionics + payload."""
        return self.p_prop_level_elec_nom_w + self.p_avionics_w + self.p_payload_w


def _check_design(design: Design) -> None:
    values = {
        "wing_span_m": design.wing_span_m,
        "aspect_ratio": design.aspect_ratio,
        "battery_mass_kg": design.battery_mass_kg,
        "avionics_mass_kg": design.avionics_mass_kg,
        "payload_mass_kg": design.payload_mass_kg,
        "avionics_power_w": design.avionics_power_w,
        "payload_power_w": design.payload_power_w,
        "p_prop_max_w": design.p_prop_max_w,
    }
    for name, value in values.items():
        if not math.isfinite(value):
            raise InvalidDesignError(f"{name} must be finite, got {value!r}.")
    if design.wing_span_m <= 0.0:
        raise InvalidDesignError(f"Wing span must be > 0, got {design.wing_span_m}.")
    if design.aspect_ratio <= 0.0:
        raise InvalidDesignError(f"Aspect ratio must be > 0, got {design.aspect_ratio}.")
    if design.battery_mass_kg < 0.0:
        raise InvalidDesignError(f"Battery mass must be >= 0, got {design.battery_mass_kg}.")
    for name in ("avionics_mass_kg", "payload_mass_kg", "avionics_power_w", "payload_power_w", "p_prop_max_w"):
        if values[name] < 0.0:
            raise InvalidDesignError(f"{name} must be >= 0, got {values[name]}.")


def structural_mass_kg(wing_span_m: float, aspect_ratio: float, params: Params) -> float:
    st = params.structure
    return st.corr_fact * st.k_af_kg * wing_span_m ** st.x_span * aspect_ratio ** st.x_aspect


def derive_design(design: Design, environment: Environment, params: Params) -> DerivedDesign:
    """Derive wing area, masses, battery energy and the nominal power budget.

    Raises:
        InvalidDesignError: for non-physical geometric or mass inputs.
    """

    _check_design(design)

    b = design.wing_span_m
    ar = design.aspect_ratio
    wing_area = b * b / ar

    solar = params.solar
    if solar.n_mppt < 1:
        raise InvalidDesignError(f"n_mppt must be >= 1, got {solar.n_mppt}.")
    solar_area = solar.coverage * wing_area
    m_solar = (solar.m_sc_kg_per_m2 + solar.m_enc_kg_per_m2) * solar_area
    p_solar_peak_w = solar.irradiance_ref_w_m2 * solar_area * solar.eta_sc * solar.eta_cbr
    m_mppt = solar.n_mppt * float(power_solar.mass_MPPT(p_solar_peak_w / solar.n_mppt))

    m_struct = structural_mass_kg(b, ar, params)
    m_prop = params.propulsion.k_prop_kg_per_w * design.p_prop_max_w

    e_bat = design.battery_mass_kg * units.wh_per_kg_to_j_per_kg(params.battery.e_bat_wh_per_kg)

    m_total = (
        m_struct
        + m_solar
        + m_mppt
        + m_prop
        + design.avionics_mass_kg
        + design.payload_mass_kg
        + design.battery_mass_kg
    )
    rho_0 = air_density(environment.h_0_m, environment)
    p_prop_mech = level_flight_power_w(m_total, wing_area, ar, rho_0, params.aero)
    p_prop_elec = p_prop_mech / params.propulsion.eta_chain

    if p_prop_elec > design.p_prop_max_w:
        logger.warning(
            "Level-flight propulsion power %.1f W exceeds the installed maximum %.1f W (b=%g, AR=%g, m_bat=%g).",
            p_prop_elec,
            design.p_prop_max_w,
            b,
            ar,
            design.battery_mass_kg,
        )

    return DerivedDesign(
        wing_span_m=b,
        aspect_ratio=ar,
        wing_area_m2=wing_area,
        solar_area_m2=solar_area,
        m_struct_kg=m_struct,
        m_solar_kg=m_solar,
        m_mppt_kg=m_mppt,
        m_prop_kg=m_prop,
        m_avionics_kg=design.avionics_mass_kg,
        m_payload_kg=design.payload_mass_kg,
        m_bat_kg=design.battery_mass_kg,
        E_bat_max_j=e_bat,
        p_avionics_w=design.avionics_power_w,
        p_payload_w=design.payload_power_w,
        p_prop_level_elec_nom_w=p_prop_elec,
    )


def propulsion_power_elec_w(derived: DerivedDesign, environment: Environment, params: Params, altitude_m: float) -> float:
    """Electrical propulsion power for level flight at altitude_m (no turbulence)."""
    rho = air_density(altitude_m, environment)
    p_mech = level_flight_power_w(derived.m_total_kg, derived.wing_area_m2, derived.aspect_ratio, rho, params.aero)
    return p_mech / params.propulsion.eta_chain


def consumed_power_w(
    derived: DerivedDesign,
    environment: Environment,
    params: Params,
    altitude_m: float,
    daylight: bool,
) -> Tuple[float, float]:
    """Return (total consumed electrical power, of which propulsion) in W.

    Propulsion is increased by turbulence and, during daylight, further by turbulence_day.
    """

    p_prop = propulsion_power_elec_w(derived, environment, params, altitude_m) * (1.0 + environment.turbulence)
    if daylight:
        p_prop *= 1.0 + environment.turbulence_day
    return p_prop + derived.p_avionics_w + derived.p_payload_w, p_prop
