import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from pbd.errors import PlatformNotSupportedError, ReferenceGenerationError
from pbd.models import Platform
from pbd.services import ReferenceGenerator

REF_RE = re.compile(r"^PD-(JG|EO)-[0-9A-F]{16}$")


def test_justgiving_reference_shape():
    ref = ReferenceGenerator().generate(Platform.JUSTGIVING)
    assert REF_RE.match(ref)
    assert ref.startswith("PD-JG-")


def test_everyorg_reference_uses_its_own_tag():
    ref = ReferenceGenerator().generate(Platform.EVERY_ORG)
    assert ref.startswith("PD-EO-")


def test_token_factory_is_uppercased():
    gen = ReferenceGenerator(token_factory=lambda: "00ff00ff00ff00ff")
    assert gen.generate(Platform.JUSTGIVING) == "PD-JG-00FF00FF00FF00FF"


def test_unknown_platform_rejected():
    with pytest.raises(PlatformNotSupportedError):
        ReferenceGenerator().generate("paypal")


def test_broken_token_source_raises_generation_error():
    def boom():
        raise OSError("entropy pool unavailable")

    with pytest.raises(ReferenceGenerationError):
        ReferenceGenerator(token_factory=boom).generate(Platform.JUSTGIVING)

    with pytest.raises(ReferenceGenerationError):
        ReferenceGenerator(token_factory=lambda: "").generate(Platform.JUSTGIVING)


def test_references_are_unique_under_concurrency():
    gen = ReferenceGenerator()
    n = 2000
    with ThreadPoolExecutor(max_workers=8) as pool:
        refs = list(pool.map(lambda _: gen.generate(Platform.JUSTGIVING), range(n)))
    assert len(set(refs)) == n
