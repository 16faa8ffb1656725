import django_filters

from .models import Task


class TaskFilter(django_filters.FilterSet):
    """Equality filters accepted by the task list endpoint."""
    status = django_filters.ChoiceFilter(choices=Task.STATUS_CHOICES)
    priority = django_filters.ChoiceFilter(choices=Task.PRIORITY_CHOICES)
    team = django_filters.NumberFilter(field_name='team_id')
    # older clients send the team as ?teamId=
    teamId = django_filters.NumberFilter(field_name='team_id')

    class Meta:
        model = Task
        fields = ['status', 'priority', 'team']

    def service_filters(self):
        """Cleaned values keyed the way ``services.list_tasks`` expects."""
        filters = dict(self.form.cleaned_data)
        team_alias = filters.pop('teamId', None)
        if filters.get('team') is None:
            filters['team'] = team_alias
        return filters
