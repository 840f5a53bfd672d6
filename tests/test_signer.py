import pytest

from doubleping.common.error import SignError
from doubleping.common.ndn.ndn_packets import make_interest, make_response
from doubleping.common.signer import (DigestSha256Signer, HmacSha256Signer, Signer,
                                      make_signer)


def test_digest_signature_verifies_and_detects_tampering():
    signer = DigestSha256Signer()
    data = make_response('/serverA/interest2/1')
    signer.sign(data)

    assert len(data.signature) == 32
    assert signer.verify(data)

    data.content = b'HELLO DOGGY'
    assert not signer.verify(data)


def test_hmac_signature_depends_on_the_key():
    data = make_response('/serverB/interest1/1')
    HmacSha256Signer(b'secret').sign(data)

    assert HmacSha256Signer(b'secret').verify(data)
    assert not HmacSha256Signer(b'other').verify(data)


def test_signing_an_interest_fails():
    with pytest.raises(SignError):
        DigestSha256Signer().sign(make_interest('/serverA/interest2/1', 1000))


def test_failures_are_wrapped_in_sign_error():
    class Broken(Signer):
        def _digest(self, portion):
            raise RuntimeError('no key')

    with pytest.raises(SignError, match='no key'):
        Broken().sign(make_response('/serverA/interest2/1'))


def test_make_signer():
    assert isinstance(make_signer(None), DigestSha256Signer)
    assert isinstance(make_signer('k'), HmacSha256Signer)
    with pytest.raises(SignError):
        HmacSha256Signer(b'')


def test_signer_needs_a_digest():
    with pytest.raises(TypeError):
        Signer()
