"""
Unit tests for LayerSetWeatherProvider.
"""

import pytest

from conftest import hours, make_grid, make_wind
from weatherlayers.data.parameters import DataType, LevelType, SourceModel
from weatherlayers.layers.source import Source
from weatherlayers.layers.weather_provider import (
    LayerSetWeatherProvider,
    PointWeather,
    WeatherProvenance,
)


def add_layer(layer_set, name, records):
    layer_set.add_source_layer(name, Source.from_records(records, name))


class TestProvenance:
    """Tests for WeatherProvenance."""

    @pytest.mark.parametrize("lead,confidence", [(0, "high"), (71.9, "high"), (72, "medium"), (119, "medium"), (120, "low")])
    def test_confidence_bands(self, lead, confidence):
        assert WeatherProvenance.from_lead_hours(lead).confidence == confidence

    def test_unavailable(self):
        prov = WeatherProvenance.unavailable()
        assert prov.source_type == "none"
        assert prov.confidence == "low"

    def test_point_weather_defaults(self):
        weather = PointWeather()
        assert not weather.has_data
        assert weather.provenance.source_type == "none"


class TestProvider:
    """Tests for point weather from merged layers."""

    def test_all_fields(self, layer_set):
        model = dict(source_model=SourceModel.HRRR)
        records = []
        for h in (0, 6):
            records.extend(make_wind(3.0, 4.0, hours(h), **model))
            records.append(make_grid(DataType.WIND_GUST, 9.0, hours(h), **model))
            records.append(make_grid(DataType.PRESSURE, 1015.0, hours(h), level_type=LevelType.MSL, **model))
            records.append(make_grid(DataType.TEMP, 20.0, hours(h), **model))
        add_layer(layer_set, "hrrr", records)
        add_layer(layer_set, "waves", [
            make_grid(DataType.WAVE_HEIGHT_SIG, 2.0, hours(0)),
            make_grid(DataType.WAVE_PERIOD_SIG, 8.0, hours(0)),
            make_grid(DataType.WAVE_DIR_SIG, 270.0, hours(0)),
            make_grid(DataType.WATER_TEMP, 18.0, hours(0)),
            make_grid(DataType.CURRENT_VX, 0.6, hours(0)),
            make_grid(DataType.CURRENT_VY, 0.8, hours(0)),
        ])

        provider = LayerSetWeatherProvider(layer_set)
        weather = provider(15.0, 5.0, hours(3))
        assert weather.wind_speed_ms == pytest.approx(5.0)
        assert weather.wind_gust_ms == pytest.approx(9.0)
        assert weather.pressure == pytest.approx(1015.0)
        assert weather.air_temp == pytest.approx(20.0)
        # Wave layer has a single time and cannot answer 3h
        assert weather.sig_wave_height_m is None
        assert weather.has_data

        prov = weather.provenance
        assert prov.source_type == "forecast"
        assert prov.model_name == "HRRR"
        assert prov.layer_name == "hrrr"
        assert prov.forecast_lead_hours == pytest.approx(3.0)
        assert prov.confidence == "high"

        at_zero = provider.get_weather(15.0, 5.0, hours(0))
        assert at_zero.sig_wave_height_m == pytest.approx(2.0)
        assert at_zero.wave_period_s == pytest.approx(8.0)
        assert at_zero.wave_dir_deg == pytest.approx(270.0)
        assert at_zero.sea_temp == pytest.approx(18.0)
        assert at_zero.current_speed_ms == pytest.approx(1.0)

    def test_provenance_falls_back_to_waves(self, layer_set):
        add_layer(layer_set, "ww3", [make_grid(DataType.WAVE_HEIGHT_SIG, 2.0, source_model=SourceModel.NOAA_NCEP_WW3)])
        prov = LayerSetWeatherProvider(layer_set).get_provenance(15.0, 5.0, hours(0))
        assert prov.model_name == "NOAA_NCEP_WW3"
        assert prov.layer_name == "ww3"

    def test_no_data(self, layer_set):
        weather = LayerSetWeatherProvider(layer_set).get_weather(15.0, 5.0, hours(0))
        assert not weather.has_data
        assert weather.provenance.source_type == "none"

    def test_point_outside_layers(self, layer_set, temp_files):
        layer_set.add_layer("gfs", temp_files)
        weather = LayerSetWeatherProvider(layer_set).get_weather(-40.0, 100.0, hours(0))
        assert weather.air_temp is None
        assert weather.provenance.source_type == "none"
