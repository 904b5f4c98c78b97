"""Tests for pattern extraction of vitals and metadata from report text."""

from telemetry.domain.models import BloodPressure
from telemetry.services.extraction import extract_metadata, extract_vitals

LAB_REPORT = """Report Name: Annual Cardiology Review
Hospital: St. Mary's General
Dr. Priya Raman

Heart Rate: 128 bpm
Blood Pressure: 145/92 mmHg
SpO2: 94 %
Temperature: 37.9 C
Glucose: 210 mg/dL
"""


def test_extracts_all_vitals_from_report() -> None:
    vitals = extract_vitals(LAB_REPORT)

    assert vitals.heart_rate == 128
    assert vitals.blood_pressure == BloodPressure(systolic=145, diastolic=92)
    assert vitals.oxygen_level == 94
    assert vitals.temperature == 37.9
    assert vitals.glucose_level == 210


def test_extracts_metadata() -> None:
    metadata = extract_metadata(LAB_REPORT)

    assert metadata.report_name == "Annual Cardiology Review"
    assert metadata.hospital_name == "St. Mary's General"
    assert metadata.doctor_name == "Priya Raman"
    assert metadata.extracted_at is not None


def test_text_without_vitals_yields_empty_vitals() -> None:
    vitals = extract_vitals("Discharge summary: patient stable, follow up in two weeks.")

    assert not vitals.has_any()


def test_out_of_range_values_are_dropped_individually() -> None:
    vitals = extract_vitals("Heart rate: 900\nOxygen: 97\nTemp: 98.6")

    assert vitals.heart_rate is None
    assert vitals.temperature is None
    assert vitals.oxygen_level == 97


def test_first_slash_pair_is_blood_pressure() -> None:
    vitals = extract_vitals("BP 118/76 then 150/95")

    assert vitals.blood_pressure == BloodPressure(systolic=118, diastolic=76)


def test_metadata_missing_fields_are_none() -> None:
    metadata = extract_metadata("Heart rate: 80")

    assert metadata.report_name is None
    assert metadata.hospital_name is None
    assert metadata.doctor_name is None
