import httpx
import pytest

from mpgfit.data import Sample, clean_cars_data, fetch_cars_data, load_samples
from mpgfit.errors import FormatError, NetworkError

from conftest import DATASET_URL, mock_client


def test_clean_drops_records_with_missing_fields(cars_records):
    samples = clean_cars_data(cars_records)

    assert len(samples) == len(cars_records) - 3
    assert all(isinstance(s, Sample) for s in samples)
    assert samples[0] == Sample(
        horsepower=float(cars_records[0]["Horsepower"]),
        mpg=float(cars_records[0]["Miles_per_Gallon"]),
    )


def test_clean_keeps_zero_and_negative_values():
    samples = clean_cars_data([
        {"Horsepower": 0, "Miles_per_Gallon": -1.5},
        {"Horsepower": 80, "Miles_per_Gallon": 22},
    ])

    assert samples == [Sample(0.0, -1.5), Sample(80.0, 22.0)]


def test_clean_empty_and_columnless_input():
    assert clean_cars_data([]) == []
    assert clean_cars_data([{"Name": "x"}, {"Origin": "USA"}]) == []


def test_clean_rejects_non_object_records():
    with pytest.raises(FormatError):
        clean_cars_data([{"Horsepower": 1, "Miles_per_Gallon": 2}, [1, 2]])


def test_clean_rejects_non_numeric_values():
    with pytest.raises(FormatError):
        clean_cars_data([{"Horsepower": "lots", "Miles_per_Gallon": 20}])


def test_load_samples_uses_client(cars_client, cars_records):
    samples = load_samples(DATASET_URL, client=cars_client)
    assert len(samples) == len(cars_records) - 3


def test_fetch_http_error_status_is_network_error():
    client = mock_client(lambda request: httpx.Response(503))
    with pytest.raises(NetworkError):
        fetch_cars_data(DATASET_URL, client=client)


def test_fetch_transport_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError):
        fetch_cars_data(DATASET_URL, client=mock_client(handler))


def test_fetch_invalid_json_is_format_error():
    client = mock_client(lambda request: httpx.Response(200, content=b"<html>nope</html>"))
    with pytest.raises(FormatError):
        fetch_cars_data(DATASET_URL, client=client)


def test_fetch_non_array_json_is_format_error():
    client = mock_client(lambda request: httpx.Response(200, json={"cars": []}))
    with pytest.raises(FormatError):
        fetch_cars_data(DATASET_URL, client=client)
