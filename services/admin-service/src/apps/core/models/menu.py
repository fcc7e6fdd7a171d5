"""
Navigation menu model
"""

import uuid
from django.db import models


class MenuItem(models.Model):
    """
    Node of the admin navigation tree.
    An item without ``href`` is a group; groups with no visible children
    are pruned when the menu is rendered for a user.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=100)
    href = models.CharField(max_length=255, blank=True, null=True)
    icon = models.CharField(max_length=50, blank=True, null=True)

    permission = models.ForeignKey(
        'core.Permission',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='menu_items',
        help_text='Permission required to see this item'
    )

    is_active = models.BooleanField(default=True)
    order = models.IntegerField(default=0)
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='children'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'menu_items'
        ordering = ['order', 'created_at']
        indexes = [
            models.Index(fields=['parent', 'order']),
        ]

    def __str__(self):
        return self.title

    @property
    def is_group(self):
        return not self.href
