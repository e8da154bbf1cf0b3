"""Forms for the link planner app.

JSON clients post structured payloads straight to the services; these forms
cover the form-encoded posts from the dashboard and the login page. List
settings are entered one item per line or separated by commas.
"""

from __future__ import annotations

import re

from django import forms
from django.contrib.auth.forms import AuthenticationForm

from .engine.config import BROKEN_LINKS_ACTIONS, LINK_MODES, OLD_LINKS_ACTIONS, STRATEGY_NAMES


def _split_items(raw_value: str) -> list[str]:
    items: list[str] = []
    for line in (raw_value or '').splitlines():
        items.extend(piece.strip() for piece in line.split(','))
    return [item for item in items if item]


class ProjectSettingsForm(forms.Form):
    """Partial update of a project's planning settings."""

    max_links_per_page = forms.IntegerField(required=False, min_value=0, label='Links per page')
    priorities = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'rows': 4}),
        help_text='Strategy names in priority order, one per line.',
    )
    min_gap = forms.IntegerField(required=False, min_value=0, label='Minimum gap (words)')
    exact_anchor_percent = forms.IntegerField(required=False, min_value=0, max_value=100)
    old_links_action = forms.ChoiceField(required=False, choices=[(value, value) for value in OLD_LINKS_ACTIONS])
    broken_links_action = forms.ChoiceField(
        required=False, choices=[(value, value) for value in BROKEN_LINKS_ACTIONS]
    )
    html_class = forms.CharField(required=False, max_length=100)
    link_mode = forms.ChoiceField(required=False, choices=[(value, value) for value in LINK_MODES])
    stop_anchors = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={'rows': 4, 'placeholder': 'click here\nread more'}),
        help_text='Anchors that must never be used, one per line.',
    )
    rel_attributes = forms.CharField(required=False, help_text='For example: nofollow, noopener')
    target_blank = forms.BooleanField(required=False)
    url_pattern = forms.CharField(required=False, max_length=500, help_text='Regular expression on source URLs.')
    newer_than = forms.DateField(required=False)
    random_sample = forms.IntegerField(required=False, min_value=0, max_value=100)

    def clean_priorities(self) -> list[str]:
        names = _split_items(self.cleaned_data.get('priorities', ''))
        unknown = [name for name in names if name not in STRATEGY_NAMES]
        if unknown:
            raise forms.ValidationError(f"Unknown strategy: {', '.join(unknown)}.")
        if len(set(names)) != len(names):
            raise forms.ValidationError('Each strategy may appear only once.')
        return names

    def clean_stop_anchors(self) -> list[str]:
        return [' '.join(item.split()) for item in (self.cleaned_data.get('stop_anchors') or '').splitlines() if item.strip()]

    def clean_rel_attributes(self) -> list[str]:
        return _split_items(self.cleaned_data.get('rel_attributes', ''))

    def clean_url_pattern(self) -> str:
        pattern = (self.cleaned_data.get('url_pattern') or '').strip()
        if pattern:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise forms.ValidationError(f'Invalid regular expression: {exc}') from exc
        return pattern

    def changed_values(self) -> dict:
        """Cleaned values for the fields that were actually submitted."""

        return {name: value for name, value in self.cleaned_data.items() if name in self.data}


class LaunchRunForm(forms.Form):
    """Form-encoded run launch: the strategies to enable and an optional seed."""

    strategies = forms.MultipleChoiceField(choices=[(name, name) for name in STRATEGY_NAMES])
    seed = forms.IntegerField(required=False, min_value=0)


class CandidateDecisionForm(forms.Form):
    decision = forms.ChoiceField(choices=[('approved', 'approve'), ('rejected', 'reject')])
    version = forms.IntegerField(required=False, min_value=1)


class LoginForm(AuthenticationForm):
    """Authentication form with placeholder hints to match the UI."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fields['username'].widget.attrs.update({
            'autofocus': True,
            'placeholder': 'you@example.com or username',
        })
        self.fields['password'].widget.attrs.update({
            'placeholder': 'Your password',
        })
