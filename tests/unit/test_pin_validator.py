"""Unit tests for PIN validation"""

import aiohttp
import pytest

from conftest import PIN_URL
from quizswarm.core.exceptions import ProbeTransportError
from quizswarm.infrastructure.hub.pin_validator import PinValidator


@pytest.fixture
def validator(hub_settings, logger, fake_hub):
    return PinValidator(hub_settings, logger, session=fake_hub.session)


@pytest.mark.asyncio
async def test_play_id_means_accepted(validator, fake_hub):
    fake_hub.pin_bodies["123456"] = {"playId": 987}

    result = await validator.validate("123456")

    assert result.accepted
    assert result.play_id == "987"
    call = fake_hub.session.calls[0]
    assert call["url"] == PIN_URL
    assert call["data"] == {"pinCode": "123456"}
    assert call["headers"]["Content-Type"].startswith("application/x-www-form-urlencoded")


@pytest.mark.asyncio
async def test_error_code_one_is_wrong_pin(validator):
    result = await validator.validate("000001")

    assert not result.accepted
    assert result.wrong_pin
    assert result.error_code == 1


@pytest.mark.asyncio
async def test_unusual_body_is_rejection_but_not_wrong_pin(validator, fake_hub):
    fake_hub.pin_bodies["000002"] = {"message": "maintenance"}

    result = await validator.validate("000002")

    assert not result.accepted
    assert not result.wrong_pin
    assert result.raw == {"message": "maintenance"}


@pytest.mark.asyncio
async def test_non_object_body(validator, fake_hub):
    fake_hub.pin_bodies["000003"] = "oops"

    result = await validator.validate("000003")

    assert result.play_id is None
    assert result.raw == "oops"


@pytest.mark.asyncio
async def test_transport_failure_raises(validator, fake_hub):
    fake_hub.pin_bodies["000004"] = aiohttp.ClientConnectionError("reset")

    with pytest.raises(ProbeTransportError) as exc_info:
        await validator.validate("000004")

    assert exc_info.value.pin == "000004"
