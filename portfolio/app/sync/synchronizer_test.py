"""Unit tests for synchronizer.py."""

import asyncio
import unittest
import unittest.mock

import sqlalchemy.exc
import sqlmodel

from portfolio.app import models, schemas, testing
from portfolio.app.clients import storage
from portfolio.app.sync import associations, autofill, locations, synchronizer
from portfolio.app.sync.errors import InvalidPictureSetIdError, PictureSetNotFoundError


class EchoTranslator:
    """Prefixes the target locale; knows one real phrase."""

    async def translate(self, text: str, target: str, source: str = 'auto') -> str:
        if (text, target) == ('海边日落', 'en'):
            return 'Sunset by the sea'
        return f'[{target}] {text}'


class FakeAnalyzer:
    """Returns canned text per kind."""

    def __init__(self, results: dict[str, str] | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, str]] = []

    async def analyze(self, image_url: str, kind: str) -> str:
        self.calls.append((image_url, kind))
        return self.results.get(kind, '')


class TestParseSetId(unittest.TestCase):
    """Tests for parse_set_id."""

    def test_valid(self) -> None:
        """Numeric strings and positive ints are accepted."""
        self.assertEqual(synchronizer.parse_set_id('42'), 42)
        self.assertEqual(synchronizer.parse_set_id(' 7 '), 7)
        self.assertEqual(synchronizer.parse_set_id(3), 3)

    def test_invalid(self) -> None:
        """Missing, non-numeric and non-positive ids are rejected."""
        for raw in (None, '', 'abc', '-1', '0', '1.5', 0, -4, True):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidPictureSetIdError):
                    synchronizer.parse_set_id(raw)


class SynchronizerTestCase(unittest.TestCase):
    """Shared fixtures: vocabulary rows, fake collaborators."""

    def setUp(self) -> None:
        """Create vocabulary and the synchronizer under test."""
        self.engine = testing.make_in_memory_engine()
        self.session = sqlmodel.Session(self.engine)
        self.session.add(models.Category(id=1, name='Nature'))
        self.session.add(models.Category(id=2, name='City'))
        self.session.add(models.Season(id=1, name='Spring'))
        self.session.add(models.Season(id=2, name='Summer'))
        self.session.add(models.Section(id=1, name='Top', display_order=0))
        self.session.add(models.Section(id=2, name='Bottom', display_order=1))
        self.session.add(models.Section(id=3, name='Featured', display_order=2))
        self.session.commit()

        self.s3 = unittest.mock.MagicMock()
        self.storage = storage.ObjectStorage(
            self.s3, 'photos', 'https://cdn.example.com'
        )
        self.analyzer = FakeAnalyzer()
        self.sync = synchronizer.PictureSetSynchronizer(
            self.session, self.storage, self.analyzer, EchoTranslator(), concurrency=2
        )

    def tearDown(self) -> None:
        """Close session after each test."""
        self.session.close()

    def save(
        self, payload: dict[str, object], set_id: int | None = None
    ) -> schemas.SyncResult:
        model = schemas.PictureSetInput.model_validate(payload)
        return asyncio.run(self.sync.save(set_id, model))

    def deleted_keys(self) -> list[str]:
        return sorted(
            call.kwargs['Key'] for call in self.s3.delete_object.call_args_list
        )

    def tag_names(self, join: associations.JoinTable, owner_id: int) -> set[str]:
        ids = associations.existing_ids(self.session, join, owner_id)
        tags = self.session.exec(sqlmodel.select(models.Tag)).all()
        return {f'{tag.type}:{tag.name}' for tag in tags if tag.id in ids}


class TestCreate(SynchronizerTestCase):
    """Saving a new set."""

    def test_create_full_set(self) -> None:
        """Set row, links, sections and translations are written."""
        result = self.save(
            {
                'title': '海边日落',
                'tags': ['sea'],
                'category_ids': [1, 2],
                'primary_category_id': 2,
                'season_ids': [1],
                'section_ids': [3],
                'position': 'UP',
                'location': {'name': 'Kyoto', 'latitude': 35.0, 'longitude': 135.7},
                'pictures': [
                    {
                        'image_url': 'picture/a.jpg',
                        'title': 'Tide',
                        'style': 'landscape',
                    },
                    {'image_url': 'picture/b.jpg', 'tags': ['rock']},
                ],
            }
        )
        set_id = result.id
        picture_set = self.session.get(models.PictureSet, set_id)
        assert picture_set is not None
        self.assertEqual(picture_set.position, 'up')
        self.assertEqual(result.zh.title, '海边日落')
        self.assertEqual(result.en.title, 'Sunset by the sea')
        self.assertEqual([p.order_index for p in result.pictures], [0, 1])
        self.assertIsNone(result.pictures[0].enriched)

        self.assertEqual(
            self.tag_names(associations.SET_TAGS, set_id),
            {'topic:sea', 'category:Nature', 'category:City', 'season:Spring'},
        )
        self.assertEqual(
            associations.existing_ids(self.session, associations.SET_SECTIONS, set_id),
            {1, 3},
        )
        primary = self.session.get(models.PictureSetCategory, (set_id, 2))
        assert primary is not None
        self.assertTrue(primary.is_primary)

        first, second = (p.id for p in result.pictures)
        self.assertEqual(
            self.tag_names(associations.PICTURE_TAGS, first), {'style:Landscape'}
        )
        self.assertEqual(
            self.tag_names(associations.PICTURE_TAGS, second), {'topic:rock'}
        )
        location = locations.primary_location(
            self.session, associations.SET_LOCATIONS, set_id
        )
        assert location is not None
        self.assertEqual(location.name, 'Kyoto')

        stored = autofill.read_translations(
            self.session, autofill.PICTURE_TRANSLATIONS, first
        )
        self.assertEqual(stored['en'].title, 'Tide')
        self.assertEqual(stored['zh'].title, '[zh] Tide')
        self.assertEqual(
            result.pictures[0].en_touched.title, schemas.TouchState.AUTHORED_ENGLISH
        )

    def test_propagation_flags(self) -> None:
        """Season, location and categories flow from the set to pictures."""
        result = self.save(
            {
                'category_ids': [1],
                'season_ids': [2],
                'location': {'name': 'Oslo', 'latitude': 59.9, 'longitude': 10.7},
                'options': {
                    'fill_missing_from_set': True,
                    'propagate_categories_to_pictures': True,
                },
                'pictures': [
                    {'image_url': 'picture/a.jpg'},
                    {
                        'image_url': 'picture/b.jpg',
                        'season_id': 1,
                        'location': {
                            'name': 'Bergen',
                            'latitude': 60.3,
                            'longitude': 5.3,
                        },
                    },
                ],
            }
        )
        first, second = (p.id for p in result.pictures)
        row_a = self.session.get(models.Picture, first)
        row_b = self.session.get(models.Picture, second)
        assert row_a is not None and row_b is not None
        self.assertEqual(row_a.season_id, 2)
        self.assertEqual(row_b.season_id, 1)

        join = associations.PICTURE_LOCATIONS
        loc_a = locations.primary_location(self.session, join, first)
        loc_b = locations.primary_location(self.session, join, second)
        assert loc_a is not None and loc_b is not None
        self.assertEqual((loc_a.name, loc_b.name), ('Oslo', 'Bergen'))

        self.assertEqual(
            associations.existing_ids(
                self.session, associations.PICTURE_CATEGORIES, first
            ),
            {1},
        )
        self.assertEqual(
            self.tag_names(associations.PICTURE_TAGS, first),
            {'category:Nature', 'season:Summer'},
        )

    def test_override_existing_picture_props(self) -> None:
        """Overriding replaces picture seasons and locations with the set's."""
        result = self.save(
            {
                'season_ids': [2],
                'location': {'name': 'Oslo', 'latitude': 59.9, 'longitude': 10.7},
                'options': {
                    'fill_missing_from_set': True,
                    'override_existing_picture_props': True,
                },
                'pictures': [
                    {
                        'image_url': 'picture/b.jpg',
                        'season_id': 1,
                        'location': {
                            'name': 'Bergen',
                            'latitude': 60.3,
                            'longitude': 5.3,
                        },
                    },
                ],
            }
        )
        picture_id = result.pictures[0].id
        row = self.session.get(models.Picture, picture_id)
        assert row is not None
        self.assertEqual(row.season_id, 2)
        location = locations.primary_location(
            self.session, associations.PICTURE_LOCATIONS, picture_id
        )
        assert location is not None
        self.assertEqual(location.name, 'Oslo')

    def test_position_links_first_matching_section(self) -> None:
        """Only the first whole-word match in display order is linked."""
        self.session.add(models.Section(id=4, name='Backup', display_order=-1))
        self.session.add(models.Section(id=5, name='Top picks', display_order=9))
        self.session.commit()

        up = self.save({'position': 'up'})
        self.assertEqual(
            associations.existing_ids(self.session, associations.SET_SECTIONS, up.id),
            {1},
        )
        down = self.save({'position': 'down'})
        self.assertEqual(
            associations.existing_ids(
                self.session, associations.SET_SECTIONS, down.id
            ),
            {2},
        )

    def test_season_id_joins_season_ids(self) -> None:
        """season_id counts as a selected season and a lone season is stored."""
        both = self.save({'season_id': 1, 'season_ids': [2]})
        row = self.session.get(models.PictureSet, both.id)
        assert row is not None
        self.assertEqual(row.season_id, 1)
        self.assertEqual(
            self.tag_names(associations.SET_TAGS, both.id),
            {'season:Spring', 'season:Summer'},
        )

        listed = self.save({'season_ids': [2]})
        row = self.session.get(models.PictureSet, listed.id)
        assert row is not None
        self.assertEqual(row.season_id, 2)

        single = self.save(
            {
                'season_id': 1,
                'options': {'fill_missing_from_set': True},
                'pictures': [{'image_url': 'picture/a.jpg'}],
            }
        )
        picture = self.session.get(models.Picture, single.pictures[0].id)
        assert picture is not None
        self.assertEqual(picture.season_id, 1)
        self.assertEqual(
            self.tag_names(associations.SET_TAGS, single.id), {'season:Spring'}
        )


class TestUpdate(SynchronizerTestCase):
    """Saving over an existing set."""

    def setUp(self) -> None:
        """Create a set with three pictures."""
        super().setUp()
        result = self.save(
            {
                'title': 'Coast',
                'category_ids': [1, 2],
                'pictures': [
                    {'image_url': 'picture/1.jpg', 'raw_image_url': 'raw/1.dng'},
                    {'image_url': 'picture/2.jpg', 'raw_image_url': 'raw/2.dng'},
                    {
                        'image_url': 'https://cdn.example.com/picture/3.jpg',
                        'raw_image_url': 'raw/3.dng',
                    },
                ],
            }
        )
        self.set_id = result.id
        self.ids = [p.id for p in result.pictures]
        self.s3.reset_mock()

    def update(self, payload: dict[str, object]) -> schemas.SyncResult:
        model = schemas.PictureSetInput.model_validate(payload)
        return asyncio.run(self.sync.update(str(self.set_id), model))

    def test_merge_by_identity(self) -> None:
        """[1,2,3] saved as [{id:2},{new},{id:1}] keeps 1 and 2, adds one, drops 3."""
        one, two, three = self.ids
        result = self.update(
            {
                'title': 'Coast',
                'pictures': [
                    {
                        'id': two,
                        'image_url': 'picture/2.jpg',
                        'raw_image_url': 'raw/2.dng',
                    },
                    {'image_url': 'picture/new.jpg'},
                    {
                        'id': one,
                        'image_url': 'picture/1.jpg',
                        'raw_image_url': 'raw/1.dng',
                    },
                ],
            }
        )
        result_ids = [p.id for p in result.pictures]
        self.assertEqual(result_ids[0], two)
        self.assertEqual(result_ids[2], one)
        self.assertNotIn(result_ids[1], self.ids)
        self.assertEqual(result.deleted_picture_ids, [three])
        self.assertIsNone(self.session.get(models.Picture, three))

        rows = self.session.exec(
            sqlmodel.select(models.Picture)
            .where(models.Picture.picture_set_id == self.set_id)
            .order_by(models.Picture.order_index)  # type: ignore[arg-type]
        ).all()
        self.assertEqual([row.id for row in rows], result_ids)
        self.assertEqual([row.order_index for row in rows], [0, 1, 2])
        self.assertEqual(self.deleted_keys(), ['picture/3.jpg', 'raw/3.dng'])
        self.assertEqual(
            self.session.exec(
                sqlmodel.select(models.PictureTranslation).where(
                    models.PictureTranslation.picture_id == three
                )
            ).all(),
            [],
        )

    def test_replaced_image_deleted_after_commit(self) -> None:
        """A changed URL removes the old object unless it is still referenced."""
        one, two, three = self.ids
        self.update(
            {
                'pictures': [
                    {
                        'id': one,
                        'image_url': 'picture/2.jpg',
                        'raw_image_url': 'raw/1.dng',
                    },
                    {
                        'id': two,
                        'image_url': 'picture/1b.jpg',
                        'raw_image_url': 'raw/2.dng',
                    },
                    {
                        'id': three,
                        'image_url': 'https://cdn.example.com/picture/3.jpg',
                        'raw_image_url': 'raw/3.dng',
                    },
                ],
            }
        )
        self.assertEqual(self.deleted_keys(), ['picture/1.jpg'])

    def test_storage_failure_does_not_block(self) -> None:
        """Storage errors are swallowed and rows still go away."""
        import botocore.exceptions

        self.s3.delete_object.side_effect = botocore.exceptions.ClientError(
            {'Error': {'Code': '500', 'Message': 'down'}}, 'DeleteObject'
        )
        result = self.update({'pictures': []})
        self.assertEqual(sorted(result.deleted_picture_ids), sorted(self.ids))
        self.assertEqual(
            self.session.exec(sqlmodel.select(models.Picture)).all(), []
        )

    def test_full_state_links(self) -> None:
        """Dropping a category and the location removes their links."""
        self.update(
            {
                'category_ids': [2],
                'location': {'name': 'Oslo', 'latitude': 59.9, 'longitude': 10.7},
            }
        )
        self.update({'category_ids': [2]})
        self.assertEqual(
            associations.existing_ids(
                self.session, associations.SET_CATEGORIES, self.set_id
            ),
            {2},
        )
        self.assertIsNone(
            locations.primary_location(
                self.session, associations.SET_LOCATIONS, self.set_id
            )
        )

    def test_touched_english_survives_base_change(self) -> None:
        """A touched English title is returned unchanged when the base changes."""
        result = self.update(
            {
                'title': '新的标题',
                'en': {'title': 'My own title'},
                'zh': {'title': ''},
                'en_touched': {'title': 'authored_english'},
            }
        )
        self.assertEqual(result.en.title, 'My own title')
        self.assertEqual(result.zh.title, '[zh] My own title')

    def test_missing_set(self) -> None:
        """Updating an unknown id fails without writing."""
        model = schemas.PictureSetInput(title='Ghost')
        with self.assertRaises(PictureSetNotFoundError):
            asyncio.run(self.sync.update('999', model))

    def test_invalid_id(self) -> None:
        """A non-numeric id is rejected before any write."""
        model = schemas.PictureSetInput(title='Changed')
        with self.assertRaises(InvalidPictureSetIdError):
            asyncio.run(self.sync.update('abc', model))
        picture_set = self.session.get(models.PictureSet, self.set_id)
        assert picture_set is not None
        self.assertEqual(picture_set.title, 'Coast')

    def test_store_error_aborts(self) -> None:
        """A store error rolls back steps 2-6 and propagates."""
        one, two, three = self.ids
        error = sqlalchemy.exc.OperationalError('INSERT', {}, Exception('disk full'))
        payload = {
            'title': 'Changed',
            'pictures': [
                {'id': one, 'image_url': 'picture/other.jpg'},
                {'id': two, 'image_url': 'picture/2.jpg', 'raw_image_url': 'raw/2.dng'},
                {'id': three, 'image_url': 'picture/3.jpg'},
            ],
        }
        with unittest.mock.patch.object(
            associations, 'reconcile', side_effect=error
        ):
            with self.assertLogs('portfolio.app.sync.synchronizer', 'ERROR'):
                with self.assertRaises(sqlalchemy.exc.OperationalError):
                    self.update(payload)
        picture_set = self.session.get(models.PictureSet, self.set_id)
        assert picture_set is not None
        self.assertEqual(picture_set.title, 'Coast')
        self.assertEqual(
            len(
                self.session.exec(
                    sqlmodel.select(models.Picture).where(
                        models.Picture.picture_set_id == self.set_id
                    )
                ).all()
            ),
            3,
        )
        self.s3.delete_object.assert_not_called()

    def test_dropped_picture_objects_kept_on_store_error(self) -> None:
        """A rolled-back save leaves the objects of dropped pictures alone."""
        one, two, _ = self.ids
        error = sqlalchemy.exc.OperationalError('INSERT', {}, Exception('disk full'))
        payload = {
            'pictures': [
                {'id': one, 'image_url': 'picture/1.jpg', 'raw_image_url': 'raw/1.dng'},
                {'id': two, 'image_url': 'picture/2.jpg', 'raw_image_url': 'raw/2.dng'},
            ],
        }
        with unittest.mock.patch.object(
            associations, 'reconcile', side_effect=error
        ):
            with self.assertLogs('portfolio.app.sync.synchronizer', 'ERROR'):
                with self.assertRaises(sqlalchemy.exc.OperationalError):
                    self.update(payload)
        self.s3.delete_object.assert_not_called()
        rows = self.session.exec(
            sqlmodel.select(models.Picture).where(
                models.Picture.picture_set_id == self.set_id
            )
        ).all()
        self.assertEqual(sorted(row.id for row in rows), sorted(self.ids))


class TestEnrichmentStep(SynchronizerTestCase):
    """Step 7 and the final autofill pass."""

    def test_generated_titles_are_translated(self) -> None:
        """AI titles from step 7 get both locales in step 8."""
        self.analyzer.results = {'title': 'Golden Hour', 'subtitle': 'Low sun'}
        result = self.save(
            {
                'cover_image_url': 'picture/cover.jpg',
                'options': {'autogen_titles_subtitles': True},
                'pictures': [{'image_url': 'picture/a.jpg', 'title': 'Kept'}],
            }
        )
        self.assertIn(
            ('https://cdn.example.com/picture/cover.jpg', 'title'), self.analyzer.calls
        )
        picture_set = self.session.get(models.PictureSet, result.id)
        assert picture_set is not None
        self.assertEqual(picture_set.title, 'Golden Hour')
        self.assertEqual(result.en.title, 'Golden Hour')
        self.assertEqual(result.zh.title, '[zh] Golden Hour')

        picture = result.pictures[0]
        self.assertTrue(picture.enriched)
        row = self.session.get(models.Picture, picture.id)
        assert row is not None
        self.assertEqual(row.title, 'Kept')
        self.assertEqual(row.subtitle, 'Low sun')
        self.assertEqual(picture.zh.subtitle, '[zh] Low sun')

    def test_enrich_stored_set(self) -> None:
        """Enriching later fills what the save left empty."""
        created = self.save({'pictures': [{'image_url': 'picture/a.jpg'}]})
        self.analyzer.results = {'title': 'Golden Hour'}
        options = schemas.SyncOptions(autogen_titles_subtitles=True)
        result = asyncio.run(self.sync.enrich(str(created.id), options))

        self.assertIn(
            ('https://cdn.example.com/picture/a.jpg', 'title'), self.analyzer.calls
        )
        self.assertEqual(result.en.title, 'Golden Hour')
        self.assertEqual(result.zh.title, '[zh] Golden Hour')
        picture = result.pictures[0]
        self.assertTrue(picture.enriched)
        self.assertEqual(picture.order_index, 0)
        self.assertEqual(picture.zh.title, '[zh] Golden Hour')
        stored = autofill.read_translations(
            self.session, autofill.SET_TRANSLATIONS, created.id
        )
        self.assertEqual(stored['zh'].title, '[zh] Golden Hour')

    def test_enrich_without_switches_changes_nothing(self) -> None:
        """With every switch off no picture is enriched."""
        created = self.save(
            {'title': 'Coast', 'pictures': [{'image_url': 'picture/a.jpg'}]}
        )
        result = asyncio.run(self.sync.enrich(created.id, schemas.SyncOptions()))
        self.assertEqual(self.analyzer.calls, [])
        self.assertEqual(result.zh.title, '[zh] Coast')
        self.assertFalse(result.pictures[0].enriched)

    def test_enrich_errors(self) -> None:
        """Bad and unknown ids are rejected."""
        options = schemas.SyncOptions(auto_fill_locales=True)
        with self.assertRaises(InvalidPictureSetIdError):
            asyncio.run(self.sync.enrich('abc', options))
        with self.assertRaises(PictureSetNotFoundError):
            asyncio.run(self.sync.enrich('999', options))


if __name__ == '__main__':
    unittest.main()
