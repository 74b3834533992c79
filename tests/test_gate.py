from archmaint.errors import ConfirmationUnavailableError
from archmaint.gate import GateResult, ReconciliationGate
from archmaint.snapshot import NamedSet

BEFORE = NamedSet.of('kernels', ['linux', 'linux-headers'])
AFTER_NEW_KERNEL = NamedSet.of('kernels', ['linux', 'linux-headers', 'linux-lts'])


class Recorder:
    def __init__(self, answer=True, exc=None):
        self.answer = answer
        self.exc = exc
        self.prompts = []
        self.actions = 0

    def confirm(self, prompt):
        self.prompts.append(prompt)
        if self.exc:
            raise self.exc
        return self.answer

    def act(self):
        self.actions += 1


def test_should_prompt_when_kernel_added():
    assert ReconciliationGate().should_prompt(BEFORE, AFTER_NEW_KERNEL) is True


def test_declined_confirmation_never_acts():
    recorder = Recorder(answer=False)
    result = ReconciliationGate().confirm_and_act(
        BEFORE, AFTER_NEW_KERNEL, 'Reboot?', recorder.confirm, recorder.act
    )
    assert result == GateResult.DECLINED
    assert recorder.prompts == ['Reboot?']
    assert recorder.actions == 0


def test_confirmed_runs_action():
    recorder = Recorder(answer=True)
    result = ReconciliationGate().confirm_and_act(
        BEFORE, AFTER_NEW_KERNEL, 'Reboot?', recorder.confirm, recorder.act
    )
    assert result == GateResult.ACTED
    assert recorder.actions == 1


def test_unchanged_sets_never_show_dialog():
    recorder = Recorder()
    same = NamedSet('kernels', tuple(reversed(BEFORE.elements)))
    result = ReconciliationGate().confirm_and_act(BEFORE, same, 'Reboot?', recorder.confirm, recorder.act)
    assert result == GateResult.NOT_NEEDED
    assert recorder.prompts == []
    assert recorder.actions == 0


def test_disabled_policy_never_prompts():
    recorder = Recorder()
    gate = ReconciliationGate(enabled=False)
    assert gate.should_prompt(BEFORE, AFTER_NEW_KERNEL) is False
    assert gate.confirm_and_act(BEFORE, AFTER_NEW_KERNEL, 'Reboot?', recorder.confirm, recorder.act) == (
        GateResult.NOT_NEEDED
    )
    assert recorder.prompts == []


def test_unavailable_dialog_is_not_fatal():
    recorder = Recorder(exc=ConfirmationUnavailableError('no display'))
    result = ReconciliationGate().confirm_and_act(
        BEFORE, AFTER_NEW_KERNEL, 'Reboot?', recorder.confirm, recorder.act
    )
    assert result == GateResult.UNAVAILABLE
    assert recorder.actions == 0
