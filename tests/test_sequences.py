from __future__ import annotations

from stemchat.sequences import extract_sequences, split_sequence


def test_split_sequence_on_every_separator() -> None:
	text = "`Events > Flag` + **Looks > Say**, Motion > Move; Control => Wait → Sound ⇒ Pen"
	assert split_sequence(text) == [
		"Events > Flag",
		"Looks > Say",
		"Motion > Move",
		"Control",
		"Wait",
		"Sound",
		"Pen",
	]


def test_arrow_line_becomes_one_sequence() -> None:
	text = "Events > When Green Flag Clicked -> Looks > Say Hello"
	assert extract_sequences(text) == [["Events > When Green Flag Clicked", "Looks > Say Hello"]]


def test_inline_code_spans_come_first_and_are_not_repeated() -> None:
	text = "Drag `Events > When Flag Clicked` then `Motion > Move 10 Steps`.\nLooks > Say Hi -> Sound > Play"
	assert extract_sequences(text) == [
		["Events > When Flag Clicked"],
		["Motion > Move 10 Steps"],
		["Looks > Say Hi", "Sound > Play"],
	]


def test_bullets_quotes_and_labels_are_stripped() -> None:
	text = "\n".join(
		[
			"- Events > When Flag Clicked → Motion > Move 10 Steps",
			"2. Step two: Control > Forever -> Motion > Turn 15 Degrees",
			"> 💡 Tip: Looks > Say Hello",
		]
	)
	assert extract_sequences(text) == [
		["Events > When Flag Clicked", "Motion > Move 10 Steps"],
		["Control > Forever", "Motion > Turn 15 Degrees"],
		["Looks > Say Hello"],
	]


def test_lines_without_commands_are_ignored() -> None:
	assert extract_sequences("Click -> Run -> Done") == []
	assert extract_sequences("No commands here at all.") == []
	assert extract_sequences("") == []


def test_code_span_without_command_keeps_its_text() -> None:
	text = "Press `space` -> Events > When Key Pressed"
	assert extract_sequences(text) == [["Press space", "Events > When Key Pressed"]]


def test_code_span_with_arrows_is_one_sequence() -> None:
	text = "`Events > When Green Flag Clicked -> Motion > Move 10 Steps`"
	assert extract_sequences(text) == [["Events > When Green Flag Clicked", "Motion > Move 10 Steps"]]
