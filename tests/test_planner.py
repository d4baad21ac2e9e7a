import pytest

from conftest import FakeDirectory, make_account, make_student
from roster_sync.engine.models import ActionType, DirectoryDevice, ExternalId, PlanMode
from roster_sync.engine.planner import NEW_STUDENT, NOT_IN_ROSTER, ActionPlanner, count_by_type
from roster_sync.orchestrator.executor import PlanExecutor


class TestAccountPass:
    def test_new_student_without_device_is_created(self, deriver, as_of, john):
        actions = ActionPlanner(deriver).plan([john], [], {}, as_of)

        assert len(actions) == 1
        action = actions[0]
        assert action.type == ActionType.CREATE
        assert action.student == john
        assert action.target_path == "/org/student/high/2028/john.doe"
        assert action.reason == NEW_STUDENT

    def test_new_student_with_unknown_device_is_only_created(self, deriver, as_of):
        student = make_student(device_serial="CHR404")
        actions = ActionPlanner(deriver).plan([student], [], {}, as_of)

        assert [a.type for a in actions] == [ActionType.CREATE]
        assert actions[0].target_path == "/org/student/high/2028/john.doe"

    def test_graduated_student_is_deactivated(self, deriver, as_of, graduate):
        account = make_account(
            primary_email=graduate.email,
            org_unit_path="/org/student/high/2024/old.timer",
        )
        actions = ActionPlanner(deriver).plan([graduate], [account], {}, as_of)

        assert [a.type for a in actions] == [ActionType.DEACTIVATE]
        assert actions[0].reason == "graduated"
        assert actions[0].target_path == "/org/student/high/2024/old.timer"
        assert actions[0].account == account

    def test_graduated_and_already_suspended_is_left_alone(self, deriver, as_of, graduate):
        account = make_account(primary_email=graduate.email, suspended=True)
        assert ActionPlanner(deriver).plan([graduate], [account], {}, as_of) == []

    def test_graduate_without_account_is_not_created(self, deriver, as_of, graduate):
        assert ActionPlanner(deriver).plan([graduate], [], {}, as_of) == []

    def test_account_in_place_needs_nothing(self, deriver, as_of, john):
        assert ActionPlanner(deriver).plan([john], [make_account()], {}, as_of) == []

    def test_account_in_wrong_place_is_moved(self, deriver, as_of, john):
        account = make_account(org_unit_path="/org/student/middle/2028/john.doe")
        actions = ActionPlanner(deriver).plan([john], [account], {}, as_of)

        assert [a.type for a in actions] == [ActionType.MOVE]
        assert actions[0].target_path == "/org/student/high/2028/john.doe"
        assert actions[0].reason == (
            "Move from /org/student/middle/2028/john.doe to /org/student/high/2028/john.doe"
        )

    def test_unmatched_account_in_active_branch_is_deactivated(self, deriver, as_of, john):
        stray = make_account(
            primary_email="stray.kid2028@school.edu",
            given_name="Stray",
            family_name="Kid",
            org_unit_path="/org/student/high/2028/stray.kid",
            id="1001",
        )
        actions = ActionPlanner(deriver).plan([john], [make_account(), stray], {}, as_of)

        assert [a.type for a in actions] == [ActionType.DEACTIVATE]
        assert actions[0].reason == NOT_IN_ROSTER
        assert actions[0].student.email == "stray.kid2028@school.edu"
        assert actions[0].student.student_id == "1001"

    @pytest.mark.parametrize(
        "path, suspended",
        [
            ("/org/student/archived/stray.kid", False),
            ("/org/staff/teachers", False),
            ("/org/student/high/2028/stray.kid", True),
        ],
    )
    def test_unmatched_account_left_alone(self, deriver, as_of, path, suspended):
        stray = make_account(primary_email="stray@school.edu", org_unit_path=path, suspended=suspended)
        assert ActionPlanner(deriver).plan([], [stray], {}, as_of) == []

    def test_matched_by_external_id_is_not_recreated(self, deriver, as_of, john):
        account = make_account(
            primary_email="jdoe@school.edu",
            external_ids=[ExternalId.for_student(john.student_id)],
        )
        assert ActionPlanner(deriver).plan([john], [account], {}, as_of) == []

    def test_backfills_missing_external_id(self, deriver, as_of, john):
        planner = ActionPlanner(deriver, backfill_external_ids=True)
        actions = planner.plan([john], [make_account()], {}, as_of)
        assert [a.type for a in actions] == [ActionType.UPDATE]

        account = make_account(external_ids=[ExternalId.for_student(john.student_id)])
        assert planner.plan([john], [account], {}, as_of) == []

    def test_no_backfill_by_default(self, deriver, as_of, john):
        assert ActionPlanner(deriver).plan([john], [make_account()], {}, as_of) == []

    def test_records_without_email_are_skipped(self, deriver, as_of):
        student = make_student(email=None)
        assert ActionPlanner(deriver).plan([student], [], {}, as_of) == []

    def test_generated_email_is_used_when_resolver_given(self, deriver, as_of):
        student = make_student(email=None)
        planner = ActionPlanner(deriver, email_for=lambda s: "john.doe2028@school.edu")
        assert planner.plan([student], [make_account()], {}, as_of) == []
        assert [a.type for a in planner.plan([student], [], {}, as_of)] == [ActionType.CREATE]


class TestDevicePass:
    def test_device_in_wrong_place_is_moved(self, deriver, as_of, jane, jane_device):
        account = make_account(
            primary_email=jane.email,
            org_unit_path="/org/student/middle/2031/jane.smith",
        )
        actions = ActionPlanner(deriver).plan(
            [jane], [account], {jane.device_serial: jane_device}, as_of
        )

        assert [a.type for a in actions] == [ActionType.MOVE_DEVICE]
        assert actions[0].device == jane_device
        assert actions[0].target_path == "/org/student/middle/2031/jane.smith"

    def test_device_in_place_needs_nothing(self, deriver, as_of, jane):
        device = DirectoryDevice(
            serial_number=jane.device_serial,
            org_unit_path="/org/student/middle/2031/jane.smith",
            device_id="dev-002",
        )
        account = make_account(primary_email=jane.email, org_unit_path=device.org_unit_path)
        assert ActionPlanner(deriver).plan([jane], [account], {jane.device_serial: device}, as_of) == []

    def test_missing_device_is_skipped(self, deriver, as_of, jane):
        account = make_account(
            primary_email=jane.email,
            org_unit_path="/org/student/middle/2031/jane.smith",
        )
        assert ActionPlanner(deriver).plan([jane], [account], {}, as_of) == []

    def test_graduated_students_device_stays(self, deriver, as_of, graduate):
        student = make_student(
            student_id=graduate.student_id,
            first_name=graduate.first_name,
            last_name=graduate.last_name,
            graduation_year=graduate.graduation_year,
            email=graduate.email,
            device_serial="CHR999",
        )
        account = make_account(primary_email=student.email, suspended=True)
        device = DirectoryDevice(serial_number="CHR999", org_unit_path="/org/devices", device_id="d9")
        assert ActionPlanner(deriver).plan([student], [account], {"CHR999": device}, as_of) == []


class TestPlan:
    @pytest.fixture
    def snapshot(self, john, graduate, jane_device):
        return FakeDirectory(
            accounts=[
                make_account(org_unit_path="/org/student/middle/2028/john.doe"),
                make_account(
                    primary_email=graduate.email,
                    org_unit_path="/org/student/high/2024/old.timer",
                ),
                make_account(
                    primary_email="stray.kid2028@school.edu",
                    org_unit_path="/org/student/high/2028/stray.kid",
                ),
            ],
            devices=[jane_device],
        )

    def test_actions_come_out_in_pass_order(self, deriver, as_of, roster, graduate, snapshot):
        students = roster + [graduate]
        actions = ActionPlanner(deriver).plan(
            students, snapshot.list_accounts(), snapshot.find_devices(["CHR002345678"]), as_of
        )

        assert [a.type for a in actions] == [
            ActionType.MOVE,
            ActionType.DEACTIVATE,
            ActionType.DEACTIVATE,
            ActionType.CREATE,
            ActionType.CREATE,
            ActionType.MOVE_DEVICE,
        ]
        assert count_by_type(actions)[ActionType.DEACTIVATE] == 2
        assert count_by_type(actions)[ActionType.UPDATE] == 0

    @pytest.mark.parametrize(
        "mode, expected",
        [
            (PlanMode.CREATE_ONLY, ActionType.CREATE),
            (PlanMode.MOVE_ONLY, ActionType.MOVE),
            (PlanMode.DEACTIVATE_ONLY, ActionType.DEACTIVATE),
        ],
    )
    def test_mode_filter(self, deriver, as_of, roster, graduate, snapshot, mode, expected):
        actions = ActionPlanner(deriver, mode=mode).plan(
            roster + [graduate], snapshot.list_accounts(), {}, as_of
        )
        assert actions
        assert {a.type for a in actions} == {expected}

    def test_planning_does_not_mutate_inputs(self, deriver, as_of, roster, snapshot):
        accounts = snapshot.list_accounts()
        devices = snapshot.find_devices(["CHR002345678"])
        planner = ActionPlanner(deriver)

        first = planner.plan(roster, accounts, devices, as_of)
        second = planner.plan(roster, accounts, devices, as_of)

        assert first == second
        assert accounts == snapshot.list_accounts()

    def test_replanning_after_apply_is_empty(self, deriver, as_of, roster, graduate, snapshot):
        students = roster + [graduate]
        serials = [s.device_serial for s in students if s.device_serial]
        planner = ActionPlanner(deriver, backfill_external_ids=True)

        actions = planner.plan(students, snapshot.list_accounts(), snapshot.find_devices(serials), as_of)
        results = PlanExecutor(snapshot, concurrency_limit=3).run(actions)
        assert all(r.success for r in results)

        replanned = planner.plan(
            students, snapshot.list_accounts(), snapshot.find_devices(serials), as_of
        )
        assert replanned == []


class TestSimulate:
    def test_plans_against_empty_directory(self, deriver, as_of, roster, graduate):
        actions = ActionPlanner(deriver).simulate(roster + [graduate], as_of)

        assert [a.type for a in actions] == [
            ActionType.CREATE,
            ActionType.CREATE,
            ActionType.MOVE_DEVICE,
            ActionType.CREATE,
            ActionType.DEACTIVATE,
        ]
        assert actions[0].reason.endswith("(simulated)")

    def test_respects_mode(self, deriver, as_of, roster, graduate):
        actions = ActionPlanner(deriver, mode=PlanMode.DEACTIVATE_ONLY).simulate(
            roster + [graduate], as_of
        )
        assert [a.student for a in actions] == [graduate]
