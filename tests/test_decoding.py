# tests/test_decoding.py
"""Tests for decoding raw log-probability reports into traces."""

import base64
import json
import math
from types import SimpleNamespace

import pytest


def _record(token, logprob):
    return {
        "LogProbability": logprob,
        "Utf8Bytes": base64.b64encode(token.encode("utf-8")).decode("ascii"),
        "Token": token,
    }


def _response_payload():
    tokens = [('{"', 0.0), ("name", -0.01), ('":"', 0.0), ("Ada", -0.2), ('","', 0.0),
              ("age", -0.02), ('":', 0.0), ("36", -0.5), ("}", 0.0)]
    return {
        "Content": '{"name":"Ada","age":36}',
        "ContentTokenLogProbabilities": [_record(t, lp) for t, lp in tokens],
    }


class TestTokenLogProbRecord:
    """Base64 trace records."""

    @pytest.mark.parametrize("raw", [b"", b"a", b"ab", b"abc", b"abcd", "ü名".encode("utf-8")])
    def test_decoded_length_matches_decode(self, raw):
        """The padding-based length agrees with the decoded payload."""
        from structprob.decoding import TokenLogProbRecord

        record = TokenLogProbRecord(
            log_probability=-0.1, utf8_bytes=base64.b64encode(raw).decode("ascii")
        )
        assert record.decoded_length() == len(raw)
        assert record.decode_bytes() == raw

    def test_alias_construction(self):
        from structprob.decoding import TokenLogProbRecord

        record = TokenLogProbRecord.model_validate(_record("hi", -0.3))
        assert record.log_probability == -0.3
        assert record.token == "hi"

    def test_to_token_logprob(self):
        from structprob.decoding import TokenLogProbRecord
        from structprob.scoring import TokenLogProb

        record = TokenLogProbRecord.model_validate(_record("ü", -0.4))
        assert record.to_token_logprob() == TokenLogProb(-0.4, "ü".encode("utf-8"))

    def test_invalid_base64(self):
        from structprob.decoding import TokenLogProbRecord
        from structprob.errors import TraceDecodeError

        record = TokenLogProbRecord(log_probability=-0.1, utf8_bytes="not base64!")
        with pytest.raises(TraceDecodeError):
            record.decode_bytes()


class TestParseResponse:
    """Mapping response payloads onto LLMResponse."""

    def test_default_keys(self):
        from structprob.decoding import parse_response

        response = parse_response(_response_payload())
        assert response.content == '{"name":"Ada","age":36}'
        assert len(response.content_token_log_probabilities) == 9
        trace = response.trace()
        assert b"".join(e.token_bytes for e in trace) == response.content.encode("utf-8")

    def test_custom_keys(self):
        """Configured key names replace the defaults."""
        from structprob.config import StructprobConfig
        from structprob.decoding import parse_response

        cfg = StructprobConfig(
            content_key="text",
            logprobs_key="tokens",
            logprob_key="lp",
            bytes_key="b64",
            token_key="tok",
        )
        payload = {
            "text": "{}",
            "tokens": [{"lp": -0.1, "b64": base64.b64encode(b"{}").decode(), "tok": "{}"}],
        }
        response = parse_response(payload, cfg)
        assert response.content == "{}"
        assert response.trace()[0].token_bytes == b"{}"

    def test_missing_content_key(self):
        from structprob.decoding import parse_response
        from structprob.errors import TraceDecodeError

        payload = _response_payload()
        del payload["Content"]
        with pytest.raises(TraceDecodeError, match="Content"):
            parse_response(payload)

    def test_missing_trace_key(self):
        """A response without its token list is rejected, not read as an empty trace."""
        from structprob.decoding import parse_response
        from structprob.errors import TraceDecodeError

        payload = _response_payload()
        del payload["ContentTokenLogProbabilities"]
        with pytest.raises(TraceDecodeError, match="ContentTokenLogProbabilities"):
            parse_response(payload)

    def test_missing_entry_key(self):
        from structprob.decoding import parse_response
        from structprob.errors import TraceDecodeError

        payload = _response_payload()
        del payload["ContentTokenLogProbabilities"][0]["Utf8Bytes"]
        with pytest.raises(TraceDecodeError):
            parse_response(payload)

    def test_non_object_payload(self):
        from structprob.decoding import parse_response
        from structprob.errors import TraceDecodeError

        with pytest.raises(TraceDecodeError):
            parse_response([1, 2, 3])

    def test_invalid_logprob_type(self):
        from structprob.decoding import parse_response
        from structprob.errors import TraceDecodeError

        payload = _response_payload()
        payload["ContentTokenLogProbabilities"][0]["LogProbability"] = "high"
        with pytest.raises(TraceDecodeError):
            parse_response(payload)


class TestLoadResponse:
    """Reading response files from disk."""

    def test_load_and_score(self, tmp_path):
        from structprob.decoding import load_response
        from structprob.scoring import get_field_probabilities

        path = tmp_path / "llmresponse.json"
        path.write_text(json.dumps(_response_payload()), encoding="utf-8")

        response = load_response(path)
        result = get_field_probabilities(response.content, response.trace())

        assert result["name"].joint_probability == pytest.approx(math.exp(-0.2))
        assert result["age"].joint_probability == pytest.approx(math.exp(-0.5))

    def test_default_path_from_config(self, tmp_path, monkeypatch):
        """Without a path the configured response_file is read."""
        from structprob.decoding import load_response

        path = tmp_path / "custom.json"
        path.write_text(json.dumps(_response_payload()), encoding="utf-8")
        monkeypatch.setenv("STRUCTPROB_RESPONSE_FILE", str(path))

        assert load_response().content.startswith('{"name"')

    def test_missing_file(self, tmp_path):
        from structprob.decoding import load_response
        from structprob.errors import TraceDecodeError

        with pytest.raises(TraceDecodeError, match="Cannot read"):
            load_response(tmp_path / "absent.json")

    def test_invalid_json_file(self, tmp_path):
        from structprob.decoding import load_response
        from structprob.errors import TraceDecodeError

        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(TraceDecodeError, match="not valid JSON"):
            load_response(path)


class TestOpenAILogprobs:
    """Converting OpenAI-style logprob entries."""

    def test_dict_entries_with_bytes(self):
        from structprob.decoding import from_openai_logprobs

        trace = from_openai_logprobs(
            [
                {"token": '{"', "logprob": -0.1, "bytes": [123, 34]},
                {"token": "ü", "logprob": -0.2, "bytes": list("ü".encode("utf-8"))},
            ]
        )
        assert [e.token_bytes for e in trace] == [b'{"', "ü".encode("utf-8")]
        assert [e.log_probability for e in trace] == [-0.1, -0.2]

    def test_object_entries_fall_back_to_token_text(self):
        from structprob.decoding import from_openai_logprobs

        trace = from_openai_logprobs([SimpleNamespace(token="名", logprob=-1.5, bytes=None)])
        assert trace[0].token_bytes == "名".encode("utf-8")
        assert trace[0].byte_length == 3

    def test_missing_logprob(self):
        from structprob.decoding import from_openai_logprobs
        from structprob.errors import TraceDecodeError

        with pytest.raises(TraceDecodeError):
            from_openai_logprobs([{"token": "a"}])

    def test_invalid_bytes(self):
        from structprob.decoding import from_openai_logprobs
        from structprob.errors import TraceDecodeError

        with pytest.raises(TraceDecodeError):
            from_openai_logprobs([{"token": "a", "logprob": -0.1, "bytes": [300]}])

    def test_scores_split_multibyte_character(self):
        """A character split across two tokens still lines up by bytes."""
        from structprob.decoding import from_openai_logprobs
        from structprob.scoring import get_field_probabilities

        encoded = "値".encode("utf-8")
        trace = from_openai_logprobs(
            [
                {"token": '{"k":"', "logprob": 0.0, "bytes": list(b'{"k":"')},
                {"token": "bytes:\\xe5", "logprob": -0.3, "bytes": [encoded[0]]},
                {"token": "bytes:\\xa4\\x80", "logprob": -0.6, "bytes": list(encoded[1:])},
                {"token": '"}', "logprob": 0.0, "bytes": list(b'"}')},
            ]
        )
        result = get_field_probabilities('{"k":"値"}', trace)
        assert result["k"].joint_probability == pytest.approx(math.exp(-0.9))
        assert result["k"].average_probability == pytest.approx(math.exp(-0.45))


class TestReconstruct:
    """Rebuilding the generated text from the trace."""

    def test_reconstruct_text_and_bytes(self):
        from structprob.decoding import parse_response, reconstruct_bytes, reconstruct_text

        response = parse_response(_response_payload())
        assert reconstruct_text(response.content_token_log_probabilities) == response.content
        assert reconstruct_bytes(response.trace()) == response.content.encode("utf-8")
