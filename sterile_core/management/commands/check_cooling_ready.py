from django.core.management.base import BaseCommand

from sterile_core.workflows.executor import cooling_minutes, cooling_ready


class Command(BaseCommand):
    help = "List items in cooling whose dwell time has elapsed"

    def handle(self, *args, **options):
        ready = cooling_ready()

        for item_id in ready:
            self.stdout.write(item_id)

        self.stdout.write(
            self.style.SUCCESS(
                f"{len(ready)} item(s) cooled for at least {cooling_minutes()} minutes."
            )
        )
