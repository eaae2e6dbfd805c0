"""Unit tests for database.py."""

import unittest

import sqlalchemy.exc
import sqlmodel

from portfolio.app import database, models, testing


class TestGetSession(unittest.TestCase):
    """Tests for get_session generator."""

    def test_get_session_yields_session(self) -> None:
        """Test that get_session yields a usable Session."""
        gen = database.get_session()
        session = next(gen)
        self.assertIsInstance(session, sqlmodel.Session)
        try:
            next(gen)
        except StopIteration:
            pass


class TestGetAdminSession(unittest.TestCase):
    """Tests for get_admin_session generator."""

    def test_get_admin_session_yields_session(self) -> None:
        """Test that get_admin_session yields a usable Session."""
        gen = database.get_admin_session()
        session = next(gen)
        self.assertIsInstance(session, sqlmodel.Session)
        try:
            next(gen)
        except StopIteration:
            pass


class TestInMemoryDatabase(unittest.TestCase):
    """Integration tests using an in-memory SQLite database."""

    def setUp(self) -> None:
        """Set up in-memory database and session for each test."""
        self.engine = testing.make_in_memory_engine()
        self.session = sqlmodel.Session(self.engine)

    def tearDown(self) -> None:
        """Close session after each test."""
        self.session.close()

    def test_picture_set_with_pictures(self) -> None:
        """Test creating a set and its pictures."""
        picture_set = models.PictureSet(title='Coast')
        self.session.add(picture_set)
        self.session.commit()
        self.session.refresh(picture_set)
        assert picture_set.id is not None

        for index in range(2):
            self.session.add(
                models.Picture(
                    picture_set_id=picture_set.id,
                    order_index=index,
                    image_url=f'picture/{index}.webp',
                )
            )
        self.session.commit()

        pictures = self.session.exec(
            sqlmodel.select(models.Picture).where(
                models.Picture.picture_set_id == picture_set.id
            )
        ).all()
        self.assertEqual(len(pictures), 2)
        self.assertEqual(picture_set.position, 'up')
        self.assertTrue(picture_set.is_published)

    def test_tag_slug_is_unique(self) -> None:
        """Test that two tags cannot share a slug."""
        self.session.add(models.Tag(name='Sea', type='topic', slug='topic:sea'))
        self.session.commit()
        self.session.add(models.Tag(name='sea', type='topic', slug='topic:sea'))
        with self.assertRaises(sqlalchemy.exc.IntegrityError):
            self.session.commit()

    def test_translation_composite_key(self) -> None:
        """Test that a translation row is unique per owner and locale."""
        picture_set = models.PictureSet()
        self.session.add(picture_set)
        self.session.commit()
        self.session.refresh(picture_set)
        assert picture_set.id is not None

        self.session.add(
            models.PictureSetTranslation(
                picture_set_id=picture_set.id, locale='en', title='Coast'
            )
        )
        self.session.add(
            models.PictureSetTranslation(
                picture_set_id=picture_set.id, locale='zh', title='海岸'
            )
        )
        self.session.commit()
        fetched = self.session.get(
            models.PictureSetTranslation, (picture_set.id, 'zh')
        )
        self.assertIsNotNone(fetched)
        self.assertEqual(fetched.title, '海岸')  # type: ignore[union-attr]


if __name__ == '__main__':
    unittest.main()
