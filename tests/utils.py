# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Common utilities for anchorage tests."""

import argparse
import json
import logging
import pathlib
import unittest
from typing import Any, Callable, Dict, Iterable, List, Union

from securesystemslib.signer import Key, Signer

from anchorage.api.metadata import Metadata, Root, Targets

logger = logging.getLogger(__name__)

# DataSet is only here so type hints can be used.
DataSet = Dict[str, Any]


# Test runner decorator: Runs the test as a set of N SubTests,
# (where N is number of items in dataset), feeding the actual test
# function one test case at a time
def run_sub_tests_with_dataset(
    dataset: DataSet,
) -> Callable[[Callable], Callable]:
    """Decorator starting a unittest.TestCase.subtest() for each of the
    cases in dataset"""

    def real_decorator(
        function: Callable[[unittest.TestCase, Any], None],
    ) -> Callable[[unittest.TestCase], None]:
        def wrapper(test_cls: unittest.TestCase) -> None:
            for case, data in dataset.items():
                with test_cls.subTest(case=case):
                    # Save case name for future reference
                    test_cls.case_name = case.replace(" ", "_")
                    function(test_cls, data)

        return wrapper

    return real_decorator


def dir_url(path: str) -> str:
    """Return a file:// URL for directory ``path``, with a trailing slash"""
    return pathlib.Path(path).resolve().as_uri() + "/"


def add_key(delegator: Union[Root, Targets], key: Key, role: str) -> None:
    """Authorize 'key' for 'role', a role delegated by 'delegator'"""
    delegated = delegator.get_delegated_role(role)
    if key.keyid not in delegated.keyids:
        delegated.keyids.append(key.keyid)

    if isinstance(delegator, Root):
        delegator.keys[key.keyid] = key
    else:
        assert delegator.delegations is not None
        delegator.delegations.keys[key.keyid] = key


def sign(md: Metadata, signers: Iterable[Signer]) -> None:
    """Replace the signatures of 'md' with signatures by 'signers'"""
    md.signatures.clear()
    for signer in signers:
        signature = signer.sign(md.signed_bytes)
        md.signatures[signature.keyid] = signature


def serialize(md: Metadata, compact: bool = True) -> bytes:
    """Return 'md' as JSON bytes, the way a repository would publish it"""
    indent = None if compact else 1
    separators = (",", ":") if compact else (",", ": ")
    return json.dumps(
        md.to_dict(), indent=indent, separators=separators, sort_keys=True
    ).encode("utf-8")


def configure_test_logging(argv: List[str]) -> None:
    """Configure logger level for a certain test file"""
    # parse arguments but only handle '-v': argv may contain
    # other things meant for unittest argument parser
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("-v", "--verbose", action="count", default=0)
    args, _ = parser.parse_known_args(argv)

    if args.verbose <= 1:
        # 0 and 1 both mean ERROR: this way '-v' makes unittest print test
        # names without increasing log level
        loglevel = logging.ERROR
    elif args.verbose == 2:
        loglevel = logging.WARNING
    elif args.verbose == 3:
        loglevel = logging.INFO
    else:
        loglevel = logging.DEBUG

    logging.basicConfig(level=loglevel)
