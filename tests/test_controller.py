"""
Tests for the host-facing controller, including the threaded lifecycle.
"""

import threading

import pytest

from conftest import wait_until
from threshold_control import (
    AlarmCategory,
    AlarmStatus,
    ConfigurationError,
    ControlConfig,
    DeviceBinding,
    LifecycleConfig,
    LifecycleError,
    MonitoringTask,
    ReadOnlyParameterError,
    Severity,
    TaskState,
    ThresholdController,
    UnknownParameterError,
)


def test_construction_defaults(device):
    controller = ThresholdController("THRESHOLD1", device)
    config = controller.config
    assert (config.threshold_value, config.hysteresis, config.update_rate) == (0.0, 0.1, 10.0)
    assert controller.task_state is TaskState.STOPPED
    assert controller.binding is None


def test_construction_rejects_invalid_name(device):
    with pytest.raises(ConfigurationError):
        ThresholdController("bad name", device)


def test_enable_without_binding_is_rejected(make_controller, events):
    controller = make_controller(binding=None)

    with pytest.raises(ConfigurationError) as excinfo:
        controller.enable()

    assert "register_device" in excinfo.value.suggestion
    assert controller.task_state is TaskState.STOPPED
    assert controller.enabled is False
    assert events[-1].category is AlarmCategory.STATE


def test_enable_runs_task_and_switches_output(make_controller, device):
    device.value = 3.0
    controller = make_controller()

    assert controller.enable() is True
    assert controller.task_state is TaskState.RUNNING
    assert wait_until(lambda: controller.output_state)
    assert device.writes[0] is True

    assert controller.disable() is True
    assert controller.task_state is TaskState.STOPPED
    assert controller.enabled is False


def test_no_writes_after_disable(make_controller, device):
    controller = make_controller()
    controller.enable()
    device.value = 3.0
    assert wait_until(lambda: controller.output_state)
    controller.disable()

    writes = list(device.writes)
    device.value = -5.0
    reads = device.reads
    wait_until(lambda: False, timeout=0.05)

    assert device.writes == writes
    assert device.reads == reads
    assert controller.output_state is True


def test_refresh_keeps_value_live_while_disabled(make_controller, device):
    controller = make_controller()
    controller.enable()
    device.value = 3.0
    assert wait_until(lambda: controller.output_state)
    controller.disable()
    writes = list(device.writes)

    device.value = -5.0
    result = controller.refresh()

    assert result.current_value == -5.0
    assert controller.current_value == -5.0
    assert controller.output_state is True
    assert device.writes == writes


def test_set_parameter_returns_warning(make_controller):
    controller = make_controller()
    result = controller.set_parameter("hysteresis", 3.0)
    assert result.valid
    assert result.severity is Severity.WARNING
    assert controller.hysteresis == 3.0


def test_rejected_set_leaves_state_untouched(make_controller, published):
    controller = make_controller()
    before = controller.config
    count = len(published)

    with pytest.raises(ConfigurationError) as excinfo:
        controller.set_parameter("hysteresis", 6.0)

    assert excinfo.value.suggestion
    assert controller.config == before
    assert len(published) == count


def test_property_setters_validate(make_controller):
    controller = make_controller()
    controller.threshold_value = -3.0
    assert controller.get_parameter("threshold_value") == -3.0
    with pytest.raises(ConfigurationError):
        controller.update_rate = 0.0


def test_configure_applies_together(make_controller):
    controller = make_controller()
    controller.configure(threshold_value=4.0, hysteresis=4.0)
    assert (controller.threshold_value, controller.hysteresis) == (4.0, 4.0)
    with pytest.raises(UnknownParameterError):
        controller.configure(gain=1.0)


@pytest.mark.parametrize("name", ["output_state", "alarm_status", "current_value", "last_update"])
def test_runtime_fields_are_read_only(make_controller, name):
    controller = make_controller()
    with pytest.raises(ReadOnlyParameterError):
        controller.set_parameter(name, 1)


def test_read_only_properties(make_controller):
    controller = make_controller()
    with pytest.raises(ReadOnlyParameterError):
        controller.output_state = True
    with pytest.raises(ReadOnlyParameterError):
        controller.alarm_status = AlarmStatus.NORMAL


def test_unknown_parameter(make_controller):
    controller = make_controller()
    with pytest.raises(UnknownParameterError):
        controller.get_parameter("gain")
    with pytest.raises(UnknownParameterError):
        controller.set_parameter("gain", 1.0)


def test_get_parameter_by_name(make_controller):
    controller = make_controller(binding=DeviceBinding("DEV_PORT", 7))
    assert controller.get_parameter("device_port") == "DEV_PORT"
    assert controller.get_parameter("device_address") == 7
    assert controller.get_parameter("enabled") is False
    assert controller.get_parameter("alarm_status") is AlarmStatus.NORMAL


def test_change_notification(make_controller):
    controller = make_controller()
    changes = []
    controller.subscribe(lambda name, value: changes.append((name, value)))
    controller.set_parameter("threshold_value", 1.0)
    assert changes == [("threshold_value", 1.0)]


def test_publish_on_commands(make_controller, published):
    controller = make_controller()
    count = len(published)
    controller.set_parameter("threshold_value", 1.0)
    controller.reset()
    assert len(published) == count + 2
    assert published[-1].config.threshold_value == 1.0


def test_register_device_only_while_disabled(make_controller):
    controller = make_controller(binding=None)
    controller.register_device("NEW_PORT", 3)
    assert controller.binding == DeviceBinding("NEW_PORT", 3)

    controller.enable()
    with pytest.raises(LifecycleError):
        controller.register_device("OTHER", 1)
    with pytest.raises(LifecycleError):
        controller.set_parameter("device_address", 4)
    controller.disable()

    controller.set_parameter("device_address", 4)
    assert controller.binding == DeviceBinding("NEW_PORT", 4)


def test_register_device_rejects_bad_binding(make_controller):
    controller = make_controller()
    with pytest.raises(ConfigurationError):
        controller.register_device("NEW_PORT", 256)
    with pytest.raises(ConfigurationError):
        controller.register_device("", 0)
    assert controller.binding == DeviceBinding("DEV_PORT", 0)


def test_reset_clears_output_and_alarm(make_controller, device):
    controller = make_controller()
    device.value = 3.0
    controller.refresh()  # disabled: no output change
    controller.enable()
    assert wait_until(lambda: controller.output_state)
    controller.disable()
    controller.store.set_alarm(AlarmStatus.MAJOR, AlarmCategory.COMM)

    assert controller.reset() is True
    assert controller.output_state is False
    assert controller.alarm_status is AlarmStatus.NORMAL
    assert device.output is False
    assert controller.threshold_value == 2.5


def test_enable_is_idempotent(make_controller):
    controller = make_controller()
    controller.enable()
    task = controller._task
    assert controller.enable(1) is True
    assert controller._task is task


def test_enabled_flag_by_name(make_controller):
    controller = make_controller()
    controller.set_parameter("enabled", 2)
    assert controller.task_state is TaskState.RUNNING
    controller.set_parameter("enabled", 0)
    assert controller.task_state is TaskState.STOPPED


def test_read_failures_raise_alarm_and_loop_continues(make_controller, device):
    controller = make_controller()
    device.read_ok = False
    controller.enable()
    assert wait_until(lambda: controller.alarm_status is AlarmStatus.MAJOR)

    device.read_ok = True
    device.value = 3.0
    assert wait_until(lambda: controller.output_state and controller.alarm_status is AlarmStatus.NORMAL)


def test_rate_change_while_running(make_controller, device):
    controller = make_controller()
    controller.enable()
    controller.update_rate = 500.0
    reads = device.reads
    assert wait_until(lambda: device.reads > reads + 5)
    assert controller.task_state is TaskState.RUNNING


def test_disable_times_out_when_device_hangs(make_controller, device, events):
    controller = make_controller(lifecycle=LifecycleConfig(stop_timeout=0.1, poll_interval=0.01))
    controller.enable()
    assert wait_until(lambda: device.reads > 0)
    device.gate = threading.Event()
    # let the task block inside its next read
    wait_until(lambda: False, timeout=0.05)
    device.value = 3.0

    assert controller.disable() is False
    assert controller.task_state is TaskState.STOP_REQUESTED
    assert events[-1].category is AlarmCategory.TIMEOUT

    # re-enable while the old task is still stopping is rejected after the bounded wait
    with pytest.raises(LifecycleError):
        controller.enable()
    assert controller.enabled is False

    device.gate.set()
    assert wait_until(lambda: controller.task_state is TaskState.STOPPED)
    # the read that finished after disable must not drive the output
    assert device.writes == []
    assert controller.enable() is True
    assert controller.task_state is TaskState.RUNNING


def test_reenable_blocks_until_previous_task_stops(make_controller, device):
    controller = make_controller(lifecycle=LifecycleConfig(stop_timeout=0.1, poll_interval=0.01))
    controller.enable()
    assert wait_until(lambda: device.reads > 0)
    device.gate = threading.Event()
    wait_until(lambda: False, timeout=0.05)
    assert controller.disable() is False

    controller.lifecycle.stop_timeout = 2.0
    threading.Timer(0.1, device.gate.set).start()
    assert controller.enable() is True
    assert controller.task_state is TaskState.RUNNING


def test_task_start_failure_disables_controller(make_controller, monkeypatch, events):
    def broken_start(self):
        raise RuntimeError("can't start new thread")

    monkeypatch.setattr(MonitoringTask, "start", broken_start)
    controller = make_controller()

    assert controller.enable() is False
    assert controller.enabled is False
    assert controller.task_state is TaskState.STOPPED
    assert controller.alarm_status is AlarmStatus.INVALID
    assert events[-1].severity is Severity.FATAL


def test_context_manager_disables(device):
    with ThresholdController(
        "THRESHOLD1",
        device,
        binding=DeviceBinding("DEV_PORT", 0),
        config=ControlConfig(threshold_value=2.5, hysteresis=0.2, update_rate=200.0),
    ) as controller:
        controller.enable()
        assert controller.task_state is TaskState.RUNNING
    assert controller.task_state is TaskState.STOPPED


def test_failing_alarm_sink_does_not_stop_monitoring(make_controller, device):
    def broken(event):
        raise RuntimeError("host gone")

    controller = make_controller(sink=broken)
    device.read_ok = False
    controller.enable()
    assert wait_until(lambda: device.reads > 5)
    reads = device.reads

    assert wait_until(lambda: device.reads > reads + 5)
    assert controller.task_state is TaskState.RUNNING
    assert controller.alarm_status is AlarmStatus.MAJOR
    assert controller.disable() is True


def test_alarm_sink_may_call_back_into_controller(make_controller, device):
    resets = []
    holder = []

    def reset_on_comm(event):
        if event.category is AlarmCategory.COMM and holder:
            resets.append(holder[0].reset())

    controller = make_controller(sink=reset_on_comm)
    holder.append(controller)
    device.read_ok = False
    controller.enable()

    assert wait_until(lambda: len(resets) >= 3)
    assert all(resets)
    assert controller.disable() is True
    assert controller.task_state is TaskState.STOPPED


def test_register_device_stores_integer_address(make_controller):
    controller = make_controller(binding=None)
    controller.register_device("NEW_PORT", 3.0)
    address = controller.get_parameter("device_address")
    assert address == 3
    assert isinstance(address, int)
    assert controller.binding == DeviceBinding("NEW_PORT", 3)
