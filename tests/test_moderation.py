import pytest

from advert_desk.db.schemas.submission import SubmissionCreate
from advert_desk.bot.services.auth import AuthService
from advert_desk.bot.services.submission import SubmissionService
from advert_desk.flows.moderation import ModerationFlow, parse_score
from advert_desk.utils.errors import FieldValidationError
from advert_desk.utils.export import CSV_FILENAME, build_summary

from conftest import TEACHER_EMAIL, TEACHER_PASSWORD, FakeClipboard

DEVICE = 9001


async def seed(name: str = "Ada", student_class: str = "9A1", brand: str = "Nikee") -> str:
    return await SubmissionService().create(SubmissionCreate(
        student_name=name,
        student_class=student_class,
        category="trainers",
        brand=brand,
        canva_url="https://www.canva.com/design/abc/view",
    ))


@pytest.fixture
def make_flow(status, board, viewer, clipboard, downloads):
    flows = []

    def factory(**overrides) -> ModerationFlow:
        parts = dict(
            session=AuthService().session(DEVICE),
            status=status,
            board=board,
            viewer=viewer,
            clipboard=clipboard,
            downloads=downloads,
        )
        parts.update(overrides)
        flow = ModerationFlow(**parts)
        flow.start()
        flows.append(flow)
        return flow

    yield factory


@pytest.fixture
async def flow(store, teacher, make_flow):
    board_flow = make_flow()
    await board_flow.settle()
    yield board_flow
    await board_flow.close()


@pytest.fixture
async def signed_in(flow):
    await flow.sign_in(TEACHER_EMAIL, TEACHER_PASSWORD)
    await flow.settle()
    return flow


class TestParseScore:
    @pytest.mark.parametrize("raw, expected", [("0", 0), ("20", 20), (" 7 ", 7), ("12.0", 12), (15, 15)])
    def test_valid(self, raw, expected):
        assert parse_score(raw) == expected

    @pytest.mark.parametrize("raw", ["21", "-1", "abc", "", "12.5", "nan", "inf", None])
    def test_invalid(self, raw):
        with pytest.raises(FieldValidationError) as info:
            parse_score(raw)
        assert info.value.params == {"min": 0, "max": 20}


class TestAuth:
    async def test_signed_out_board_is_empty(self, flow, board):
        await seed()
        await flow.settle()
        assert board.identities == [None]
        assert flow.cache == []
        assert not flow.is_subscribed

    async def test_missing_credentials(self, flow, sink):
        await flow.sign_in("  ", "")
        await flow.settle()
        assert sink.last == "Enter email and password."

    async def test_wrong_password(self, flow, sink):
        assert not await flow.sign_in(TEACHER_EMAIL, "nope-nope-nope")
        await flow.settle()
        assert sink.last == "Invalid email or password."
        assert not flow.is_subscribed

    async def test_sign_in_loads_board(self, flow, sink, board):
        sub_id = await seed()
        assert await flow.sign_in(TEACHER_EMAIL, TEACHER_PASSWORD)
        await flow.settle()
        assert sink.last == "Signed in."
        assert board.identities[-1] == TEACHER_EMAIL
        assert [r.id for r in flow.cache] == [sub_id]
        assert board.renders[-1][1] == 1

    async def test_new_submissions_arrive_live(self, signed_in, board):
        first = await seed("Ada")
        second = await seed("Grace")
        await signed_in.settle()
        assert [r.id for r in board.last_rows] == [second, first]

    async def test_sign_in_twice_keeps_one_subscription(self, signed_in):
        await signed_in.sign_in(TEACHER_EMAIL, TEACHER_PASSWORD)
        await signed_in.settle()
        assert SubmissionService().listener_count == 1

    async def test_sign_out_stops_subscription(self, signed_in, sink, board):
        await seed()
        await signed_in.settle()
        await signed_in.sign_out()
        await signed_in.settle()
        assert sink.last == "Signed out."
        assert board.identities[-1] is None
        assert signed_in.cache == []
        assert SubmissionService().listener_count == 0

        await seed("Late")
        await signed_in.settle()
        assert signed_in.cache == []

    async def test_reset_requires_email(self, flow, sink):
        assert not await flow.request_password_reset("")
        await flow.settle()
        assert sink.last == "Enter your email first."

    async def test_reset_for_unknown_email_still_reports_sent(self, flow, sink):
        assert await flow.request_password_reset("nobody@school.org")
        await flow.settle()
        assert sink.last == "Password reset code sent."

    async def test_close_releases_listeners(self, signed_in):
        await signed_in.close()
        assert SubmissionService().listener_count == 0
        assert not signed_in.is_subscribed


class TestFilters:
    async def test_class_and_mark_filters(self, signed_in, board):
        a = await seed("Ada", "9A1")
        b = await seed("Bo", "9B2")
        c = await seed("Cy", "9B2")
        await signed_in.settle()
        await signed_in.save_mark(c, "14", "")
        await signed_in.settle()

        await signed_in.set_filters(class_filter="9B2")
        assert [r.id for r in board.last_rows] == [c, b]
        assert board.renders[-1][1] == 3

        await signed_in.set_filters(mark_filter="unmarked")
        assert [r.id for r in board.last_rows] == [b]

        await signed_in.set_filters(class_filter="", mark_filter="")
        assert [r.id for r in board.last_rows] == [c, b, a]


class TestMarks:
    @pytest.mark.parametrize("raw", ["0", "20"])
    async def test_bounds_are_accepted(self, signed_in, sink, raw):
        sub_id = await seed()
        await signed_in.settle()
        assert await signed_in.save_mark(sub_id, raw, "  WWW: bold colours  ")
        await signed_in.settle()
        assert sink.last == "Saved."

        row = next(r for r in signed_in.cache if r.id == sub_id)
        assert row.mark.score == int(raw)
        assert row.mark.feedback == "WWW: bold colours"
        assert row.mark.marked_by == TEACHER_EMAIL
        assert row.mark.marked_at is not None

    @pytest.mark.parametrize("raw", ["21", "-1", "abc", ""])
    async def test_invalid_score_writes_nothing(self, signed_in, sink, raw):
        sub_id = await seed()
        await signed_in.settle()
        assert not await signed_in.save_mark(sub_id, raw, "feedback")
        await signed_in.settle()
        assert sink.last == "Score must be a number from 0 to 20."
        rows = await SubmissionService().list_ordered()
        assert next(r for r in rows if r.id == sub_id).mark is None

    async def test_remark_replaces_feedback(self, signed_in):
        sub_id = await seed()
        await signed_in.settle()
        await signed_in.save_mark(sub_id, "10", "first pass")
        await signed_in.save_mark(sub_id, "12", None)
        await signed_in.settle()
        row = signed_in.cache[0]
        assert row.mark.score == 12
        assert row.mark.feedback == ""

    async def test_unknown_record(self, signed_in, sink):
        assert not await signed_in.save_mark("missing", "10", "")
        await signed_in.settle()
        assert sink.last == "That submission is no longer on the board."


class TestDelete:
    async def test_requires_confirmation(self, signed_in, sink):
        sub_id = await seed()
        await signed_in.settle()
        assert not await signed_in.confirm_delete(sub_id)
        await signed_in.settle()
        assert sink.last == "Press Delete on the submission first."
        assert sub_id in [r.id for r in await SubmissionService().list_ordered()]

    async def test_confirmed_delete(self, signed_in, sink):
        sub_id = await seed()
        await signed_in.settle()
        row = signed_in.request_delete(sub_id)
        assert row.id == sub_id
        assert await signed_in.confirm_delete(sub_id)
        await signed_in.settle()
        assert sink.last == "Deleted."
        assert signed_in.cache == []
        assert signed_in.pending_delete is None

    async def test_cancel(self, signed_in):
        sub_id = await seed()
        await signed_in.settle()
        signed_in.request_delete(sub_id)
        signed_in.cancel_delete(sub_id)
        assert not await signed_in.confirm_delete(sub_id)
        assert sub_id in [r.id for r in await SubmissionService().list_ordered()]

    async def test_deleting_previewed_record_closes_viewer(self, signed_in, viewer):
        sub_id = await seed()
        await signed_in.settle()
        await signed_in.preview(sub_id)
        signed_in.request_delete(sub_id)
        await signed_in.confirm_delete(sub_id)
        assert signed_in.preview_id is None
        assert not viewer.visible


class TestPreviewCopyExport:
    async def test_preview(self, signed_in, viewer):
        sub_id = await seed()
        await signed_in.settle()
        await signed_in.preview(sub_id)
        embed, external, meta = viewer.opened[-1]
        assert embed == "https://www.canva.com/design/abc/view?embed"
        assert external == "https://www.canva.com/design/abc/view"
        assert meta == "Ada (9A1) — Nikee"
        assert signed_in.preview_id == sub_id

        await signed_in.close_preview()
        assert signed_in.preview_id is None
        assert viewer.target == "about:blank"

    async def test_copy_summary(self, signed_in, sink, clipboard):
        sub_id = await seed()
        await signed_in.settle()
        assert await signed_in.copy_summary(sub_id)
        await signed_in.settle()
        assert clipboard.text == build_summary(signed_in.cache[0])
        assert sink.last == "Copied to clipboard."

    async def test_copy_failure_reported(self, store, teacher, make_flow, sink):
        board_flow = make_flow(clipboard=FakeClipboard(fail=True))
        await board_flow.sign_in(TEACHER_EMAIL, TEACHER_PASSWORD)
        sub_id = await seed()
        await board_flow.settle()
        assert not await board_flow.copy_summary(sub_id)
        await board_flow.settle()
        assert sink.last == "Could not copy the summary."
        await board_flow.close()

    async def test_export_uses_visible_rows(self, signed_in, downloads):
        await seed("Ada", "9A1")
        await seed("Bo", "9B2")
        await signed_in.settle()
        await signed_in.set_filters(class_filter="9B2")
        assert await signed_in.export_csv()

        filename, data = downloads.files[-1]
        assert filename == CSV_FILENAME
        lines = data.decode("utf-8").splitlines()
        assert len(lines) == 2
        assert '"Bo","9B2"' in lines[1]
