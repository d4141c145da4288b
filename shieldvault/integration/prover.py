"""
Proving backend plumbing (imperative shell).

The ZK system itself is external. This module defines the interface the
pipeline calls (`execute` then `prove`) and a subprocess backend that hands
canonical JSON to an external prover command.

Design goals:
- Fail closed: any timeout, non-zero exit or malformed output is a
  ProverError.
- The public signals returned by a backend are always bound to the pinned
  layout before anything is submitted.

IMPORTANT:
- The subprocess receives the user key and the previous-state witness.
  Only point `prover_cmd` at a trusted local binary.
"""

from __future__ import annotations

import json
import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..config import ProverConfig
from ..errors import ProverError
from ..state.canonical import bounded_json_utf8_size, canonical_json_bytes, hex_to_bytes
from .inputs import CircuitInputs, bind_public_signals


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Witness:
    circuit: str
    data: bytes


@dataclass(frozen=True)
class ProofResult:
    proof: bytes
    public_signals: Tuple[int, ...]


class ProvingBackend:
    """Interface for witness generation and proving."""

    def execute(self, circuit: str, inputs: Mapping[str, Any]) -> Witness:
        raise NotImplementedError

    def prove(self, witness: Witness) -> Tuple[bytes, Sequence[Any]]:
        raise NotImplementedError


class DisabledProvingBackend(ProvingBackend):
    def execute(self, circuit: str, inputs: Mapping[str, Any]) -> Witness:
        raise ProverError("proving disabled")

    def prove(self, witness: Witness) -> Tuple[bytes, Sequence[Any]]:
        raise ProverError("proving disabled")


class MisconfiguredProvingBackend(ProvingBackend):
    def __init__(self, reason: str) -> None:
        self._reason = str(reason)

    def execute(self, circuit: str, inputs: Mapping[str, Any]) -> Witness:
        raise ProverError(self._reason)

    def prove(self, witness: Witness) -> Tuple[bytes, Sequence[Any]]:
        raise ProverError(self._reason)


class SubprocessProvingBackend(ProvingBackend):
    """
    Prove by calling an external process.

    Protocol (one process per call):
    - stdin: canonical JSON, either
        {"op": "execute", "circuit": str, "inputs": {...}} or
        {"op": "prove", "circuit": str, "witness": "0x..."}
    - stdout: JSON object with keys:
        - ok: bool
        - error: optional str
        - witness: "0x..." (execute)
        - proof: "0x...", public_signals: [str, ...] (prove)
    """

    def __init__(
        self,
        *,
        cmd: Sequence[str],
        timeout_s: float,
        max_bytes: int,
        max_stdout_bytes: int,
        max_stderr_bytes: int,
    ) -> None:
        if not cmd:
            raise ValueError("cmd must be non-empty")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        if max_bytes <= 0 or max_stdout_bytes <= 0 or max_stderr_bytes <= 0:
            raise ValueError("byte limits must be positive")
        self._cmd = list(cmd)
        self._timeout_s = float(timeout_s)
        self._max_bytes = int(max_bytes)
        self._max_stdout = int(max_stdout_bytes)
        self._max_stderr = int(max_stderr_bytes)

    def _run(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            bounded_json_utf8_size(payload, max_bytes=self._max_bytes)
            stdin_bytes = canonical_json_bytes(payload)
        except ValueError as exc:
            raise ProverError("prover payload too large") from exc
        except TypeError as exc:
            raise ProverError(f"invalid prover payload encoding: {exc}") from exc

        try:
            proc = subprocess.Popen(
                self._cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
                close_fds=True,
            )
        except OSError as exc:
            raise ProverError(f"prover error: {exc}") from exc

        try:
            stdout, stderr = proc.communicate(stdin_bytes, timeout=self._timeout_s)
        except subprocess.TimeoutExpired as exc:
            self._kill(proc)
            raise ProverError("proving timed out") from exc
        finally:
            if proc.returncode is None:
                self._kill(proc)

        if len(stdout) > self._max_stdout:
            raise ProverError("prover stdout too large")
        if proc.returncode != 0:
            err = stderr[: self._max_stderr].decode("utf-8", errors="replace").strip()
            raise ProverError(f"prover failed (exit {proc.returncode}): {err or 'no stderr'}")
        try:
            result = json.loads(stdout)
        except ValueError as exc:
            raise ProverError(f"invalid prover output: {exc}") from exc
        if not isinstance(result, dict):
            raise ProverError("invalid prover output (not an object)")
        ok = result.get("ok")
        if ok is False:
            err = result.get("error")
            raise ProverError(err if isinstance(err, str) and err else "proving rejected")
        if ok is not True:
            raise ProverError("invalid prover output (missing ok)")
        return result

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        # start_new_session=True makes the child its own process group leader.
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError:
            proc.kill()
        try:
            proc.wait(timeout=0.2)
        except subprocess.TimeoutExpired:
            logger.warning("prover process %d did not exit after SIGKILL", proc.pid)

    def execute(self, circuit: str, inputs: Mapping[str, Any]) -> Witness:
        result = self._run({"op": "execute", "circuit": circuit, "inputs": dict(inputs)})
        witness = result.get("witness")
        if not isinstance(witness, str):
            raise ProverError("invalid prover output (missing witness)")
        try:
            return Witness(circuit=circuit, data=hex_to_bytes(witness, name="witness"))
        except ValueError as exc:
            raise ProverError(f"invalid prover output: {exc}") from exc

    def prove(self, witness: Witness) -> Tuple[bytes, Sequence[Any]]:
        result = self._run({"op": "prove", "circuit": witness.circuit, "witness": "0x" + witness.data.hex()})
        proof = result.get("proof")
        signals = result.get("public_signals")
        if not isinstance(proof, str) or not isinstance(signals, list):
            raise ProverError("invalid prover output (missing proof or public_signals)")
        try:
            return hex_to_bytes(proof, name="proof"), signals
        except ValueError as exc:
            raise ProverError(f"invalid prover output: {exc}") from exc


def make_proving_backend(config: ProverConfig) -> ProvingBackend:
    if not config.enabled:
        return DisabledProvingBackend()
    if not config.prover_cmd:
        return MisconfiguredProvingBackend("prover misconfigured (missing prover_cmd)")
    if os.name != "posix":
        return MisconfiguredProvingBackend(f"prover unsupported on platform: os.name={os.name!r}")
    cmd0 = config.prover_cmd[0]
    if not config.allow_path_lookup:
        if not os.path.isabs(cmd0):
            return MisconfiguredProvingBackend(
                "prover misconfigured (prover_cmd must be an absolute path when allow_path_lookup=False)"
            )
        if not (os.path.isfile(cmd0) and os.access(cmd0, os.X_OK)):
            return MisconfiguredProvingBackend(f"prover misconfigured (prover_cmd not executable): {cmd0}")
    return SubprocessProvingBackend(
        cmd=config.prover_cmd,
        timeout_s=config.timeout_s,
        max_bytes=config.max_input_bytes,
        max_stdout_bytes=config.max_stdout_bytes,
        max_stderr_bytes=config.max_stderr_bytes,
    )


def generate_proof(backend: ProvingBackend, inputs: CircuitInputs) -> ProofResult:
    """execute -> prove -> bind public signals to the pinned layout."""
    witness = backend.execute(inputs.mode.value, inputs.private_inputs())
    proof, signals = backend.prove(witness)
    bound = bind_public_signals(inputs, list(signals))
    logger.info("%s proof generated (%d bytes, %d public signals)", inputs.mode.value, len(proof), len(bound))
    return ProofResult(proof=bytes(proof), public_signals=bound)
