import json

import pytest

from errors import (
    AnalysisError, ConfigurationError, EmptyInputError, IncompleteStageError, NotFoundError,
    ResponseParseError, UpstreamServiceError,
)
from use_cases.analyze import STAGES, AnalysisOptions, AnalyzeSessionUseCase


ROLES_RESPONSE = json.dumps({
    "speaker_identification": {
        "speaker_0": {"role": "CHILD", "confidence": 0.95},
        "speaker_1": {"role": "PARENT", "confidence": 0.9},
    }
})

# seeded utterances in order: child, parent, parent, child
TAGS_RESPONSE = json.dumps([
    {"id": 1, "code": "RF", "feedback": "Nice reflection."},
    {"id": 2, "code": "LP", "feedback": "Specific praise."},
])


def _use_case(store, classifier, progress, **options):
    return AnalyzeSessionUseCase(store, classifier, progress, AnalysisOptions(**options))


def _roles(store, session_id):
    return {u["speakerId"]: u["role"] for u in store.get_utterances(session_id)}


def test_child_role_scenario(store, progress, make_classifier):
    store.add_session("s-1", mode="CDI")
    store.create_utterances("s-1", [
        {"speakerId": "speaker_0", "text": "Mine!", "startTime": 0.0, "endTime": 0.5, "order": 0},
        {"speakerId": "speaker_0", "text": "Blocks.", "startTime": 1.0, "endTime": 1.5, "order": 1},
    ])
    classifier = make_classifier(
        '{"speaker_identification":{"speaker_0":{"role":"CHILD","confidence":0.95}}}'
    )

    outcome = _use_case(store, classifier, progress).run_stage("s-1", "role_identification")

    assert all(u["role"] == "child" for u in store.get_utterances("s-1"))
    assert outcome.patched == 2
    committed = store.get_session("s-1")["roleIdentificationJson"]
    assert committed["runId"] == outcome.run_id
    assert committed["roleMap"] == {"speaker_0": "child"}
    assert committed["speaker_identification"]["speaker_0"]["role"] == "CHILD"


def test_full_pipeline(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(ROLES_RESPONSE, TAGS_RESPONSE)

    result = _use_case(store, classifier, progress).run(seeded_session)

    assert result.completed == list(STAGES)
    utterances = store.get_utterances(seeded_session)
    assert [u["tag"] for u in utterances] == [None, "RF", "LP", None]
    assert utterances[2]["tagLabel"] == "Labeled Praise"
    assert utterances[1]["feedback"] == "Nice reflection."

    session = store.get_session(seeded_session)
    assert session["tagCounts"]["echo"] == 1
    assert session["tagCounts"]["labeled_praise"] == 1
    assert session["overallScore"] is not None
    coding = session["pcitCoding"]
    assert coding["adultSpeakers"] == ["speaker_1"]
    assert coding["roleRunId"] == session["roleIdentificationJson"]["runId"]
    assert len(coding["codingResults"]) == 2

    tag_request = json.loads(classifier.calls[1]["prompt"].split("dialogue turns:")[1].split("Each item")[0])
    assert [item["role"] for item in tag_request] == ["child", "parent", "parent", "child"]
    assert "CDI" in classifier.calls[1]["system_prompt"]


def test_role_identification_is_idempotent(store, progress, make_classifier, seeded_session):
    use_case = _use_case(store, make_classifier(ROLES_RESPONSE, ROLES_RESPONSE), progress)

    use_case.run_stage(seeded_session, "role_identification")
    once = _roles(store, seeded_session)
    use_case.run_stage(seeded_session, "role_identification")

    assert _roles(store, seeded_session) == once == {"speaker_0": "child", "speaker_1": "parent"}


def test_role_rerun_keeps_existing_tags(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(ROLES_RESPONSE, TAGS_RESPONSE, ROLES_RESPONSE)
    use_case = _use_case(store, classifier, progress)
    use_case.run(seeded_session)

    use_case.run_stage(seeded_session, "role_identification")

    assert [u["tag"] for u in store.get_utterances(seeded_session)] == [None, "RF", "LP", None]


def test_unlabelled_speaker_marked_unknown(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(
        '{"speaker_identification": {"speaker_1": {"role": "adult", "confidence": 0.7}}}'
    )
    _use_case(store, classifier, progress).run_stage(seeded_session, "role_identification")
    assert _roles(store, seeded_session) == {"speaker_0": "unknown", "speaker_1": "parent"}


def test_role_sample_is_bounded(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(ROLES_RESPONSE)
    _use_case(store, classifier, progress, role_sample_size=2).run_stage(seeded_session, "role_identification")

    prompt = classifier.calls[0]["prompt"]
    assert "I want the red block." in prompt
    assert "Look!" not in prompt


def test_failed_patch_batch_leaves_session_uncommitted(store, progress, make_classifier, seeded_session, monkeypatch):
    original = store.patch_utterances_by_speaker

    def _flaky(session_id, speaker_id, fields):
        if speaker_id == "speaker_1":
            raise OSError("disk full")
        return original(session_id, speaker_id, fields)

    monkeypatch.setattr(store, "patch_utterances_by_speaker", _flaky)
    use_case = _use_case(store, make_classifier(ROLES_RESPONSE), progress)

    with pytest.raises(AnalysisError) as excinfo:
        use_case.run_stage(seeded_session, "role_identification")

    assert excinfo.value.session_id == seeded_session
    assert excinfo.value.stage == "role_identification"
    assert isinstance(excinfo.value.__cause__, OSError)
    assert store.get_session(seeded_session)["roleIdentificationJson"] is None
    # speaker_0 was patched before the failure surfaced
    assert _roles(store, seeded_session)["speaker_0"] == "child"


def test_tag_assignment_detects_torn_roles(store, progress, make_classifier, seeded_session):
    use_case = _use_case(store, make_classifier(ROLES_RESPONSE), progress)
    use_case.run_stage(seeded_session, "role_identification")

    # a later role run that patched one speaker and then failed
    store.patch_utterances_by_speaker(seeded_session, "speaker_0", {"role": "parent"})

    with pytest.raises(IncompleteStageError) as excinfo:
        use_case.run_stage(seeded_session, "tag_assignment")
    assert excinfo.value.stage == "tag_assignment"


def test_tag_assignment_requires_roles(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(TAGS_RESPONSE)
    with pytest.raises(IncompleteStageError):
        _use_case(store, classifier, progress).run(seeded_session, start_stage="tag_assignment")
    assert classifier.calls == []


def test_tag_batches_map_ids_per_batch(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(
        ROLES_RESPONSE,
        '[{"id": 0, "code": "UP"}, {"id": 1, "code": "BD"}]',
        '[{"id": 0, "code": "DC"}, {"id": 7, "code": "LP"}]',
    )
    _use_case(store, classifier, progress, tag_batch_size=2).run(seeded_session)

    assert len(classifier.calls) == 3
    assert [u["tag"] for u in store.get_utterances(seeded_session)] == ["UP", "BD", "DC", None]


def test_stale_tags_cleared_on_rerun(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(ROLES_RESPONSE, TAGS_RESPONSE, '[{"id": 2, "code": "UP"}]')
    use_case = _use_case(store, classifier, progress)
    use_case.run(seeded_session)

    use_case.run_stage(seeded_session, "tag_assignment")

    assert [u["tag"] for u in store.get_utterances(seeded_session)] == [None, None, "UP", None]


def test_upstream_failure_carries_context(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(UpstreamServiceError("overloaded", status_code=529))
    with pytest.raises(UpstreamServiceError) as excinfo:
        _use_case(store, classifier, progress).run(seeded_session)

    assert excinfo.value.session_id == seeded_session
    assert excinfo.value.stage == "role_identification"
    assert excinfo.value.status_code == 529
    assert all(u["role"] is None for u in store.get_utterances(seeded_session))


def test_malformed_response_is_parse_error(store, progress, make_classifier, seeded_session):
    classifier = make_classifier("I think speaker_0 is the child.")
    with pytest.raises(ResponseParseError):
        _use_case(store, classifier, progress).run_stage(seeded_session, "role_identification")
    assert store.get_session(seeded_session)["roleIdentificationJson"] is None


def test_missing_session(store, progress, make_classifier):
    classifier = make_classifier()
    with pytest.raises(NotFoundError) as excinfo:
        _use_case(store, classifier, progress).run("nope")
    assert excinfo.value.session_id == "nope"
    assert classifier.calls == []


def test_empty_session(store, progress, make_classifier):
    store.add_session("empty", mode="CDI")
    classifier = make_classifier()
    with pytest.raises(EmptyInputError):
        _use_case(store, classifier, progress).run("empty")
    assert classifier.calls == []


def test_missing_credentials_fail_before_network(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(ROLES_RESPONSE, configured=False)
    with pytest.raises(ConfigurationError):
        _use_case(store, classifier, progress).run(seeded_session)
    assert classifier.calls == []


def test_unknown_stage(store, progress, make_classifier, seeded_session):
    use_case = _use_case(store, make_classifier(), progress)
    with pytest.raises(ValueError):
        use_case.run_stage(seeded_session, "competency_analysis")
    with pytest.raises(ValueError):
        use_case.run(seeded_session, start_stage="coding")


def test_progress_reported(store, progress, make_classifier, seeded_session):
    _use_case(store, make_classifier(ROLES_RESPONSE), progress).run_stage(seeded_session, "role_identification")
    stages = {event[1] for event in progress.events}
    assert stages == {"role_identification"}
    assert progress.events[-1][2] == 1.0


def test_role_result_stored_as_returned(store, progress, make_classifier, seeded_session):
    classifier = make_classifier(json.dumps({
        "speaker_identification": {
            "speaker_0": {"role": "CHILD", "confidence": 0.95, "utterance_count": 2},
            "speaker_1": {"role": "ADULT", "confidence": 0.8},
        },
        "notes": "speaker_1 gives instructions",
    }))
    _use_case(store, classifier, progress).run_stage(seeded_session, "role_identification")

    committed = store.get_session(seeded_session)["roleIdentificationJson"]
    assert committed["speaker_identification"]["speaker_1"] == {"role": "ADULT", "confidence": 0.8}
    assert committed["notes"] == "speaker_1 gives instructions"
    assert committed["roleMap"] == {"speaker_0": "child", "speaker_1": "parent"}
    assert _roles(store, seeded_session)["speaker_1"] == "parent"


def test_failed_stage_reported_to_progress(store, progress, make_classifier, seeded_session):
    classifier = make_classifier("not json at all")
    with pytest.raises(ResponseParseError):
        _use_case(store, classifier, progress).run_stage(seeded_session, "role_identification")

    assert progress.failures == [(seeded_session, "role_identification", "ResponseParseError")]
    assert all(event[2] < 1.0 for event in progress.events)
