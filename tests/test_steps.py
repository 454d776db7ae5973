"""Tests for the test case steps XML codec."""

import pytest
from tl.azure_devops_integration.errors import MalformedStepXml, ValidationError
from tl.azure_devops_integration.steps import TestStep, escape_xml, format_test_steps, parse_test_steps


def test_empty_steps():
    assert format_test_steps([]) == '<steps id="0" last="0"></steps>'
    assert parse_test_steps('<steps id="0" last="0"></steps>') == []


def test_single_step_layout():
    xml = format_test_steps([TestStep('Open app', 'App opens')])
    assert xml == (
        '<steps id="0" last="1">'
        '<step id="1" type="ActionStep">'
        '<parameterizedString isformatted="true">Open app</parameterizedString>'
        '<parameterizedString isformatted="true">App opens</parameterizedString>'
        '</step>'
        '</steps>'
    )


def test_step_ids_are_sequential_and_last_is_count():
    xml = format_test_steps([TestStep(f'step {i}', f'result {i}') for i in range(3)])
    assert 'last="3"' in xml
    for step_id in (1, 2, 3):
        assert f'<step id="{step_id}" type="ActionStep">' in xml


def test_special_characters_are_escaped():
    xml = format_test_steps([TestStep('Type <b> & "quote"', "It's shown")])
    assert '&lt;b&gt; &amp; &quot;quote&quot;' in xml
    assert 'It&#39;s shown' in xml
    assert '<b>' not in xml


def test_escape_xml_escapes_ampersand_first():
    assert escape_xml('&lt;') == '&amp;lt;'


@pytest.mark.parametrize(
    'steps',
    [
        [],
        [TestStep('a', 'b')],
        [TestStep('Click <Save>', 'Saved & closed'), TestStep('Say "hi"', "it's '<ok>'")],
        [TestStep('No expectation')],
    ],
)
def test_parse_inverts_format(steps):
    assert parse_test_steps(format_test_steps(steps)) == steps


def test_mapping_steps_and_aliases():
    xml = format_test_steps(
        [
            {'action': 'Log in', 'expected_result': 'Dashboard'},
            {'description': 'Log out', 'expected': 'Login page'},
            {'action': 'Reload', 'expectedResult': 'Still logged out'},
        ]
    )
    assert [step.to_dict() for step in parse_test_steps(xml)] == [
        {'action': 'Log in', 'expected_result': 'Dashboard'},
        {'action': 'Log out', 'expected_result': 'Login page'},
        {'action': 'Reload', 'expected_result': 'Still logged out'},
    ]


def test_non_mapping_step_is_rejected():
    with pytest.raises(ValidationError):
        format_test_steps(['just text'])


def test_parse_rejects_malformed_xml():
    with pytest.raises(MalformedStepXml, match='not well-formed'):
        parse_test_steps('<steps><step>')


def test_parse_rejects_wrong_root():
    with pytest.raises(MalformedStepXml, match='<steps>'):
        parse_test_steps('<things/>')


def test_parse_rejects_step_without_expected_result():
    xml = (
        '<steps id="0" last="1"><step id="1" type="ActionStep">'
        '<parameterizedString isformatted="true">Only action</parameterizedString>'
        '</step></steps>'
    )
    with pytest.raises(MalformedStepXml, match='Step 1'):
        parse_test_steps(xml)


def test_parse_accepts_server_formatting():
    xml = """
    <steps id="0" last="2">
      <step id="2" type="ValidateStep">
        <parameterizedString isformatted="true">Open</parameterizedString>
        <parameterizedString isformatted="true">Opened</parameterizedString>
        <description/>
      </step>
    </steps>
    """
    assert parse_test_steps(xml) == [TestStep('Open', 'Opened')]


def test_carriage_returns_survive_the_round_trip():
    steps = [TestStep('Line 1\r\nLine 2', 'ok\r')]
    xml = format_test_steps(steps)
    assert 'Line 1&#13;\nLine 2' in xml
    assert parse_test_steps(xml) == steps


@pytest.mark.parametrize('text', ['Press Ctrl+G \x07', 'nul\x00', 'form feed\x0c', 'bad \ufffe'])
def test_characters_outside_xml_are_rejected(text):
    with pytest.raises(ValidationError, match='Step 2 action contains a character not allowed in XML'):
        format_test_steps([TestStep('fine', 'fine'), TestStep(text, 'fine')])


def test_invalid_expected_result_is_rejected():
    with pytest.raises(ValidationError, match=r'Step 1 expected result .* U\+001B'):
        format_test_steps([{'action': 'Escape', 'expected_result': 'Closed \x1b'}])


def test_tabs_and_newlines_are_kept():
    steps = [TestStep('Indent\twith tab', 'two\nlines')]
    assert parse_test_steps(format_test_steps(steps)) == steps
