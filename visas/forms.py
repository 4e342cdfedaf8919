from django import forms
from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

from .exceptions import InvalidInput
from .fields import FIELD_TYPES
from .models import VisaApplication

# ==========================================
# 0. HELPERS
# ==========================================


class StringListField(forms.Field):
    """Accepts a JSON list of non-empty strings (or a comma-separated string)."""

    def to_python(self, value):
        if value in self.empty_values:
            return None
        if isinstance(value, str):
            value = value.split(',')
        if not isinstance(value, (list, tuple)):
            raise ValidationError(_("Expected a list of strings."))
        items = [str(item).strip() for item in value]
        if any(not item for item in items):
            raise ValidationError(_("List items cannot be empty."))
        return items


def form_errors_text(form):
    parts = []
    for name, errors in form.errors.items():
        label = 'error' if name == '__all__' else name
        parts.append(f"{label}: {' '.join(errors)}")
    return "; ".join(parts)


def clean_or_raise(form):
    if not form.is_valid():
        raise InvalidInput(form_errors_text(form))
    return form.cleaned_data


# ==========================================
# 1. CONFIGURATION FORMS (Admin Setup)
# ==========================================


class FieldDefinitionForm(forms.Form):
    """
    Validates one question of a product catalog (or an ad hoc question).
    """
    field_type = forms.ChoiceField(choices=FIELD_TYPES)
    question = forms.CharField(max_length=1000)
    placeholder = forms.CharField(max_length=255, required=False)
    is_required = forms.NullBooleanField(required=False)
    display_order = forms.IntegerField(required=False)

    # For dropdown fields
    options = StringListField(required=False)
    use_countries_list = forms.NullBooleanField(required=False)

    # For upload fields
    allowed_file_types = StringListField(required=False)
    max_file_size_mb = forms.IntegerField(required=False, min_value=1)

    # For text fields
    min_length = forms.IntegerField(required=False, min_value=0)
    max_length = forms.IntegerField(required=False, min_value=1)

    is_active = forms.NullBooleanField(required=False)

    def clean(self):
        """
        Logic Validation: If field_type is 'dropdown', 'options' MUST be filled
        (unless the dropdown is fed by the countries list).
        """
        cleaned_data = super().clean()
        f_type = cleaned_data.get('field_type')
        options = cleaned_data.get('options')

        if f_type == 'dropdown' and not options and not cleaned_data.get('use_countries_list'):
            raise ValidationError({
                'options': _("Dropdown fields must have at least one option.")
            })

        min_length = cleaned_data.get('min_length')
        max_length = cleaned_data.get('max_length')
        if min_length is not None and max_length is not None and min_length > max_length:
            raise ValidationError({
                'min_length': _("min_length cannot be greater than max_length.")
            })

        # NullBoolean -> real defaults
        if cleaned_data.get('is_required') is None:
            cleaned_data['is_required'] = False
        if cleaned_data.get('use_countries_list') is None:
            cleaned_data['use_countries_list'] = False
        if cleaned_data.get('is_active') is None:
            cleaned_data['is_active'] = True
        if not cleaned_data.get('placeholder'):
            cleaned_data['placeholder'] = None
        return cleaned_data


class AdHocFieldForm(FieldDefinitionForm):
    # If set, the question is only asked to this traveler
    traveler_id = forms.IntegerField(required=False, min_value=1)


def clean_field_definition(data, form_class=FieldDefinitionForm):
    if not isinstance(data, dict):
        raise InvalidInput("Each field definition must be an object.")
    return clean_or_raise(form_class(data=data))


# ==========================================
# 2. WORKFLOW FORMS (Admin actions)
# ==========================================

# Kanban column values mapped to actual statuses
STATUS_ALIASES = {
    'pending': VisaApplication.SUBMITTED,
    'in_process': VisaApplication.PROCESSING,
    'Additional Info required': VisaApplication.ADDITIONAL_INFO_REQUIRED,
}


class UpdateStatusForm(forms.Form):
    """
    Used for Admin moving the status (Kanban).
    """
    status = forms.CharField(max_length=50)
    notes = forms.CharField(required=False)

    def clean_status(self):
        status = self.cleaned_data['status'].strip()
        status = STATUS_ALIASES.get(status, status)
        valid = dict(VisaApplication.STATUS_CHOICES)
        if status not in valid:
            raise ValidationError(_("Unknown status: %(status)s"),
                                  params={'status': status})
        return status


class ResubmissionRequestForm(forms.Form):
    """
    One correction request. Field ids and inline ad hoc questions are
    validated by the workflow service.
    """
    target = forms.ChoiceField(
        choices=VisaApplication.TARGET_CHOICES, required=False)
    traveler_id = forms.IntegerField(required=False, min_value=1)
    note = forms.CharField(required=False)

    def clean(self):
        cleaned_data = super().clean()
        if not cleaned_data.get('target'):
            cleaned_data['target'] = (
                VisaApplication.TARGET_TRAVELER if cleaned_data.get('traveler_id')
                else VisaApplication.TARGET_APPLICATION
            )
        if (cleaned_data['target'] == VisaApplication.TARGET_APPLICATION
                and cleaned_data.get('traveler_id')):
            raise ValidationError({
                'traveler_id': _("Application-level requests cannot name a traveler.")
            })
        return cleaned_data


# ==========================================
# 3. APPLICATION FORMS (Client Input)
# ==========================================


class SelectProcessingForm(forms.Form):
    processing_type = forms.CharField(max_length=50)


class PassportForm(forms.Form):
    """
    Partial passport update. Only the keys present in the payload are written.
    """
    passport_number = forms.CharField(max_length=50, required=False)
    passport_expiry_date = forms.DateField(required=False)
    residence_country = forms.CharField(max_length=100, required=False)
    has_schengen_visa = forms.NullBooleanField(required=False)
    passport_nationality = forms.CharField(max_length=100, required=False)

    def clean_passport_number(self):
        # Consistency: Force Uppercase & Trim
        passport = self.cleaned_data.get('passport_number')
        if passport:
            return passport.strip().upper()
        return passport

    def provided_data(self):
        return {name: value for name, value in self.cleaned_data.items()
                if name in self.data}


class TravelerForm(forms.Form):
    first_name = forms.CharField(max_length=100)
    last_name = forms.CharField(max_length=100)
    email = forms.EmailField(required=False)
    date_of_birth = forms.DateField(required=False)
    place_of_birth = forms.CharField(max_length=100, required=False)
