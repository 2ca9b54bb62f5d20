from dataclasses import replace

import pytest

from sucad.config import Design, Environment, Params, Settings, StructureParams, SucadConfig


@pytest.fixture
def design() -> Design:
    return Design()


@pytest.fixture
def environment() -> Environment:
    return Environment()


@pytest.fixture
def params() -> Params:
    return Params(structure=StructureParams(corr_fact=1.21))


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def coarse_settings() -> Settings:
    return replace(Settings(), dt_s=300.0)


@pytest.fixture
def config(params, coarse_settings) -> SucadConfig:
    return SucadConfig(params=params, settings=coarse_settings)
