"""Codec for the XML stored in a test case's Microsoft.VSTS.TCM.Steps field.

Each step holds two parameterizedString children, the action and the expected
result, whose text is entity-escaped:

    <steps id="0" last="2">
      <step id="1" type="ActionStep">
        <parameterizedString isformatted="true">Open &lt;login&gt;</parameterizedString>
        <parameterizedString isformatted="true">Form shown</parameterizedString>
      </step>
      ...
    </steps>
"""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from tl.azure_devops_integration.errors import MalformedStepXml, ValidationError
from typing import Any, Dict, Iterable, List, Mapping, Union


_ESCAPES = (
    ('&', '&amp;'),
    ('<', '&lt;'),
    ('>', '&gt;'),
    ('"', '&quot;'),
    ("'", '&#39;'),
    # Parsers fold a literal carriage return into a newline
    ('\r', '&#13;'),
)

# Characters XML 1.0 does not allow, even as character references
_INVALID_XML_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]')


@dataclass(frozen=True)
class TestStep:
    """A single manual test step."""

    __test__ = False  # not a pytest test class

    action: str
    expected_result: str = ''

    def to_dict(self) -> Dict[str, str]:
        return {'action': self.action, 'expected_result': self.expected_result}


StepLike = Union[TestStep, Mapping[str, Any]]


def escape_xml(text: str) -> str:
    """Entity-escape the five XML special characters and carriage returns."""
    for char, entity in _ESCAPES:
        text = text.replace(char, entity)
    return text


def coerce_step(step: StepLike) -> TestStep:
    """Convert a step mapping into a TestStep.

    Accepts 'action'/'expected_result' keys, with 'description' and 'expected'
    (or camel-cased 'expectedResult') as fallbacks.
    """
    if isinstance(step, TestStep):
        return step
    if not isinstance(step, Mapping):
        raise ValidationError(f'Test step must be a mapping, got {type(step).__name__}')

    action = step.get('action') or step.get('description') or ''
    expected = (
        step.get('expected_result') or step.get('expectedResult') or step.get('expected') or ''
    )
    return TestStep(action=str(action), expected_result=str(expected))


def format_test_steps(steps: Iterable[StepLike]) -> str:
    """Serialize steps into the Azure DevOps steps XML.

    Args:
        steps: Ordered steps, as TestStep objects or mappings

    Returns:
        XML document with 1-based step ids and last equal to the step count

    Raises:
        ValidationError: If a step is not a mapping, or its text holds a
            character that XML 1.0 cannot represent
    """
    coerced = [coerce_step(step) for step in steps]
    for step_id, step in enumerate(coerced, start=1):
        for label, text in (('action', step.action), ('expected result', step.expected_result)):
            invalid = _INVALID_XML_CHARS.search(text)
            if invalid:
                raise ValidationError(
                    f'Step {step_id} {label} contains a character not allowed in XML: '
                    f'U+{ord(invalid.group()):04X}'
                )
    parts = [f'<steps id="0" last="{len(coerced)}">']
    for step_id, step in enumerate(coerced, start=1):
        parts.append(
            f'<step id="{step_id}" type="ActionStep">'
            f'<parameterizedString isformatted="true">{escape_xml(step.action)}</parameterizedString>'
            f'<parameterizedString isformatted="true">{escape_xml(step.expected_result)}</parameterizedString>'
            '</step>'
        )
    parts.append('</steps>')
    return ''.join(parts)


def parse_test_steps(steps_xml: str) -> List[TestStep]:
    """Parse the Azure DevOps steps XML back into TestStep objects.

    Args:
        steps_xml: XML document as stored in Microsoft.VSTS.TCM.Steps

    Returns:
        Steps in document order with entities unescaped

    Raises:
        MalformedStepXml: If the XML is not well-formed, the root is not <steps>,
            or a <step> lacks its action or expected result element
    """
    try:
        root = ET.fromstring(steps_xml)
    except (ET.ParseError, TypeError) as e:
        raise MalformedStepXml(f'Test steps XML is not well-formed: {e}') from e

    if root.tag != 'steps':
        raise MalformedStepXml(f'Expected <steps> root element, found <{root.tag}>')

    steps = []
    for element in root.findall('step'):
        strings = element.findall('parameterizedString')
        if len(strings) < 2:
            raise MalformedStepXml(
                f'Step {element.get("id", "?")} must contain an action and an expected result'
            )
        steps.append(
            TestStep(action=strings[0].text or '', expected_result=strings[1].text or '')
        )
    return steps
