import pytest

from mpgfit.errors import NoModelError, TrainingInProgressError
from mpgfit.handle import ModelHandle, TrainedModel
from mpgfit.models import create_model
from mpgfit.normalize import NormalizationBounds
from mpgfit.train import TrainHistory


def make_trained():
    return TrainedModel(
        model=create_model(),
        bounds=NormalizationBounds(46, 230, 9, 46.6),
        history=TrainHistory(),
    )


def test_empty_handle():
    handle = ModelHandle()

    assert handle.get() is None
    with pytest.raises(NoModelError):
        handle.require()


def test_replace_swaps_whole_bundle():
    handle = ModelHandle()
    first, second = make_trained(), make_trained()

    handle.replace(first)
    assert handle.require() is first
    handle.replace(second)
    assert handle.require() is second


def test_only_one_training_slot():
    handle = ModelHandle()

    with handle.training_slot():
        assert handle.training
        with pytest.raises(TrainingInProgressError):
            with handle.training_slot():
                pass

    assert not handle.training
    with handle.training_slot():
        pass


def test_cancel_sets_event_only_while_training():
    handle = ModelHandle()
    assert handle.cancel() is False

    with handle.training_slot() as cancel_event:
        assert not cancel_event.is_set()
        assert handle.cancel() is True
        assert cancel_event.is_set()

    # a new run starts with a clear event
    with handle.training_slot() as cancel_event:
        assert not cancel_event.is_set()


def test_slot_released_on_error():
    handle = ModelHandle()

    with pytest.raises(RuntimeError):
        with handle.training_slot():
            raise RuntimeError("boom")
    assert not handle.training
