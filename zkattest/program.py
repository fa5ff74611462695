"""The presentation program a `Spec` compiles to.

Public input is `{"context": Field, "claims": <claims>}`, public output is the
spec's output claim. Private inputs are the owner signature and the
credentials, keyed by input name.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict

from zkattest.credential import CredentialInput, verify_credentials
from zkattest.errors import CredentialSelectionError, UnsupportedTypeError
from zkattest.operation import eval_node
from zkattest.program_spec import Spec
from zkattest.prover import Proof, VerificationKey, ZkProgram, assert_true
from zkattest.provable import Field, Signature

logger = logging.getLogger(__name__)

PROGRAM_NAME = "zkattest-presentation"


def spec_digest(spec: Spec) -> str:
    from zkattest.serialize import serialize_spec

    try:
        return serialize_spec(spec)["hash"]
    except UnsupportedTypeError:
        # specs with compute nodes never leave the process
        logger.debug("Spec is not serializable; using a process-local program digest")
        return f"local:{secrets.token_hex(16)}"


class Program:
    def __init__(self, spec: Spec):
        self.spec = spec
        self.zk_program = ZkProgram(
            name=PROGRAM_NAME,
            public_input_type=spec.public_input_type(),
            public_output_type=spec.public_output_type(),
            method=self._main,
            digest=spec_digest(spec),
        )

    def compile(self) -> VerificationKey:
        return self.zk_program.compile()

    def run(
        self,
        context: Field,
        claims: Dict[str, Any],
        owner_signature: Signature,
        credentials: Dict[str, CredentialInput],
    ) -> Proof:
        return self.zk_program.run({"context": context, "claims": claims}, owner_signature, credentials)

    def _main(
        self,
        public_input: Dict[str, Any],
        owner_signature: Signature,
        credentials: Dict[str, CredentialInput],
    ) -> Any:
        missing = [name for name, _ in self.spec.credential_inputs() if name not in credentials]
        if missing:
            raise CredentialSelectionError(missing)
        ordered = {
            name: CredentialInput(spec=cs, credential=credentials[name].credential, witness=credentials[name].witness)
            for name, cs in self.spec.credential_inputs()
        }

        owner, values = verify_credentials(public_input["context"], owner_signature, ordered)

        root: Dict[str, Any] = {"owner": owner}
        root.update(values)
        root.update(public_input["claims"])
        root.update(self.spec.constants())

        assert_true(eval_node(root, self.spec.logic.assert_), "Program assertion failed")
        return eval_node(root, self.spec.logic.output_claim)
