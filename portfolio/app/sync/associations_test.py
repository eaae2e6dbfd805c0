"""Unit tests for associations.py."""

import unittest

import sqlmodel

from portfolio.app import models, testing
from portfolio.app.sync import associations


class TestDiff(unittest.TestCase):
    """Tests for the pure diff."""

    def test_add_and_remove(self) -> None:
        """desired={3,7}, existing={7,8} adds 3 and removes 8."""
        delta = associations.diff({3, 7}, {7, 8})
        self.assertEqual(delta.to_add, {3})
        self.assertEqual(delta.to_remove, {8})

    def test_equal_sets_are_empty(self) -> None:
        """Identical memberships give an empty delta."""
        self.assertTrue(associations.diff([1, 2], [2, 1]).is_empty)

    def test_duplicates_in_desired_ignored(self) -> None:
        """Membership is a set, so repeated ids collapse."""
        delta = associations.diff([4, 4, 4], [])
        self.assertEqual(delta.to_add, {4})


class TestReconcile(unittest.TestCase):
    """Tests for reconcile against an in-memory database."""

    def setUp(self) -> None:
        """Create a picture set to own the links."""
        self.engine = testing.make_in_memory_engine()
        self.session = sqlmodel.Session(self.engine)
        picture_set = models.PictureSet(title='Coast')
        self.session.add(picture_set)
        self.session.commit()
        assert picture_set.id is not None
        self.set_id = picture_set.id

    def tearDown(self) -> None:
        """Close session after each test."""
        self.session.close()

    def _link_categories(self, *category_ids: int) -> None:
        for category_id in category_ids:
            self.session.add(
                models.PictureSetCategory(
                    picture_set_id=self.set_id, category_id=category_id
                )
            )
        self.session.commit()

    def _categories(self) -> set[int]:
        return associations.existing_ids(
            self.session, associations.SET_CATEGORIES, self.set_id
        )

    def test_one_insert_and_one_delete(self) -> None:
        """A mixed delta issues exactly one insert and one delete."""
        self._link_categories(7, 8)
        with testing.StatementCounter(self.engine) as counter:
            delta = associations.reconcile(
                self.session, associations.SET_CATEGORIES, self.set_id, {3, 7}
            )
        self.assertEqual(delta.to_add, {3})
        self.assertEqual(delta.to_remove, {8})
        self.assertEqual(counter.count('INSERT'), 1)
        self.assertEqual(counter.count('DELETE'), 1)
        self.assertEqual(self._categories(), {3, 7})

    def test_second_call_is_noop(self) -> None:
        """A second identical reconcile issues no statements."""
        associations.reconcile(
            self.session, associations.SET_TAGS, self.set_id, {1, 2, 3}
        )
        self.session.commit()
        with testing.StatementCounter(self.engine) as counter:
            delta = associations.reconcile(
                self.session, associations.SET_TAGS, self.set_id, {3, 2, 1}
            )
        self.assertTrue(delta.is_empty)
        self.assertEqual(counter.statements, [])
        self.assertEqual(
            associations.existing_ids(
                self.session, associations.SET_TAGS, self.set_id
            ),
            {1, 2, 3},
        )

    def test_only_additions_skip_delete(self) -> None:
        """No delete statement is issued when nothing is removed."""
        with testing.StatementCounter(self.engine) as counter:
            associations.reconcile(
                self.session, associations.SET_SECTIONS, self.set_id, {5}
            )
        self.assertEqual(counter.count('INSERT'), 1)
        self.assertEqual(counter.count('DELETE'), 0)
        link = self.session.get(models.PictureSetSection, (self.set_id, 5))
        assert link is not None
        self.assertEqual(link.page_context, 'default')

    def test_empty_desired_removes_all(self) -> None:
        """An empty desired set clears the owner's links."""
        self._link_categories(1, 2)
        associations.reconcile(
            self.session, associations.SET_CATEGORIES, self.set_id, set()
        )
        self.assertEqual(self._categories(), set())

    def test_other_owners_untouched(self) -> None:
        """Deletes are scoped to the owner."""
        other = models.PictureSet(title='Other')
        self.session.add(other)
        self.session.commit()
        assert other.id is not None
        self.session.add(models.PictureSetTag(picture_set_id=other.id, tag_id=9))
        self.session.add(models.PictureSetTag(picture_set_id=self.set_id, tag_id=9))
        self.session.commit()

        associations.reconcile(
            self.session, associations.SET_TAGS, self.set_id, set()
        )
        self.assertEqual(
            associations.existing_ids(self.session, associations.SET_TAGS, other.id),
            {9},
        )

    def test_extend_never_shrinks(self) -> None:
        """extend only adds ids."""
        self.session.add(models.PictureSetTag(picture_set_id=self.set_id, tag_id=5))
        self.session.commit()
        delta = associations.extend(
            self.session, associations.SET_TAGS, self.set_id, {9, 12}
        )
        self.assertEqual(delta.to_add, {9, 12})
        self.assertEqual(delta.to_remove, frozenset())


class TestSetPrimaryCategory(unittest.TestCase):
    """Tests for set_primary_category."""

    def setUp(self) -> None:
        """Create a set linked to three categories."""
        self.engine = testing.make_in_memory_engine()
        self.session = sqlmodel.Session(self.engine)
        picture_set = models.PictureSet()
        self.session.add(picture_set)
        self.session.commit()
        assert picture_set.id is not None
        self.set_id = picture_set.id
        associations.reconcile(
            self.session, associations.SET_CATEGORIES, self.set_id, {1, 2, 3}
        )
        self.session.commit()

    def tearDown(self) -> None:
        """Close session after each test."""
        self.session.close()

    def _primary(self) -> list[int]:
        link = models.PictureSetCategory
        rows = self.session.exec(
            sqlmodel.select(link.category_id).where(
                link.picture_set_id == self.set_id,
                link.is_primary == True,  # noqa: E712
            )
        ).all()
        return sorted(rows)

    def test_marks_single_primary(self) -> None:
        """Only the chosen category is primary."""
        associations.set_primary_category(self.session, self.set_id, 2)
        self.assertEqual(self._primary(), [2])
        associations.set_primary_category(self.session, self.set_id, 3)
        self.assertEqual(self._primary(), [3])

    def test_none_clears_primary(self) -> None:
        """A missing primary category leaves no primary link."""
        associations.set_primary_category(self.session, self.set_id, 1)
        associations.set_primary_category(self.session, self.set_id, None)
        self.assertEqual(self._primary(), [])


if __name__ == '__main__':
    unittest.main()
